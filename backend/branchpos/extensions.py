# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Bound to an app in create_app(); sessions are app-context scoped and
# removed on teardown.
db = SQLAlchemy()
migrate = Migrate()
