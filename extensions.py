from flask_sqlalchemy import SQLAlchemy

# Created here and bound in the app factory to avoid circular imports.
db = SQLAlchemy()
