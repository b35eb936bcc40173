"""Forms for validating request parameters."""

from wtforms import Form, PasswordField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, IPAddress, \
    Length, URL

from ..exceptions import InvalidArgument


class CreateAccountForm(Form):
    """New account details."""

    email = StringField('email', validators=[DataRequired(), Length(4, 100),
                                             Email()])
    username = StringField('username', validators=[DataRequired(),
                                                   Length(3, 32)])
    password = PasswordField('password', validators=[DataRequired(),
                                                     Length(6, 32)])
    repeat_password = PasswordField(
        'repeat_password',
        validators=[DataRequired(), EqualTo('password',
                                            message='passwords do not match')]
    )


class TokenRequestForm(Form):
    """Where to send a verification or change-password link."""

    email = StringField('email', validators=[DataRequired(), Length(4, 100),
                                             Email()])
    url = StringField('url', validators=[DataRequired(),
                                         URL(require_tld=False)])


class VerifyAccountForm(Form):
    """Token from a verification link."""

    verification_token = StringField('verification_token',
                                     validators=[DataRequired()])


class SignInForm(Form):
    """Credentials and the address they were presented from."""

    email = StringField('email', validators=[DataRequired(), Length(4, 100),
                                             Email()])
    password = PasswordField('password', validators=[DataRequired(),
                                                     Length(6, 32)])
    client_ip = StringField('client_ip', validators=[
        DataRequired(), IPAddress(ipv4=True, ipv6=True)
    ])


class ChangePasswordForm(Form):
    """Token from a change-password link and the new password."""

    change_password_token = StringField('change_password_token',
                                        validators=[DataRequired()])
    new_password = PasswordField('new_password',
                                 validators=[DataRequired(), Length(6, 32)])


def validate(form: Form) -> None:
    """
    Validate a form, raising on failure.

    Raises
    ------
    :class:`.InvalidArgument`
        With one ``field: message`` pair per failing field.
    """
    if form.validate():
        return
    problems = '; '.join(f'{name}: {" ".join(errors)}'
                         for name, errors in sorted(form.errors.items()))
    raise InvalidArgument(f'Invalid request: {problems}', problems)
