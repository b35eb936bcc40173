"""Install the identity service package."""

from setuptools import setup, find_packages

setup(
    name='identity',
    version='0.1.0',
    packages=find_packages(exclude=['tests*']),
    install_requires=[
        "bcrypt",
        "celery",
        "email-validator",
        "flask",
        "flask-sqlalchemy",
        "kombu",
        "pyjwt",
        "python-dateutil",
        "python-json-logger>=3.1",
        "pytz",
        "redis",
        "retry",
        "sqlalchemy",
        "werkzeug",
        "wtforms"
    ],
    extras_require={
        'fake': ["fakeredis"],
        'mysql': ["mysqlclient"],
        'test': ["fakeredis", "pytest"]
    },
    zip_safe=False
)
