"""
Account identity and session service.

The service owns the lifecycle of end-user accounts (registration, email
verification, sign-in, password change, deletion) and of the authenticated
sessions that back them. It keeps three stores in step:

- the relational accounts table (:mod:`identity.services.database`), the
  authority for activated identity;
- the pending-registration store (:mod:`identity.services.registrations`),
  which holds hashed credentials until the owner verifies their email;
- the sessions store (:mod:`identity.services.sessions`), which indexes
  sessions both by id and per account.

Account lifecycle transitions are published to downstream consumers through
:mod:`identity.services.events` before they are committed, so that the event
stream never lags the accounts table. The rules that tie all of this
together live in :mod:`identity.coordinator`; :mod:`identity.routes.rpc`
exposes them over HTTP.
"""
