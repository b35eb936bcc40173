"""Provides application for development purposes."""

from identity.factory import create_web_app
from identity.services import database

app = create_web_app()

if __name__ == "__main__":
    with app.app_context():
        database.create_all(database.db.engine)
    app.run(host=app.config['SERVER_HOST'],
            port=int(app.config['SERVER_PORT']),
            debug=app.config['SERVER_MODE'] == 'debug')
