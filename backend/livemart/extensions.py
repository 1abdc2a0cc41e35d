# Overview: Flask extension instances for database and migrations, plus
# lookups for the services the app factory wires into app.extensions.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

AUTH_SERVICE_KEY = "livemart.auth_service"
TOKEN_SERVICE_KEY = "livemart.token_service"


def get_auth_service():
    return current_app.extensions[AUTH_SERVICE_KEY]


def get_token_service():
    return current_app.extensions[TOKEN_SERVICE_KEY]
