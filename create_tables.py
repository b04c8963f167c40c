from app import create_app
from extensions import db

# Create a Flask app instance to establish an application context
app = create_app({'RECOVER_STALLED_GRADING': False})

# Flask-SQLAlchemy needs the application context to know which database to use.
with app.app_context():
    print("Initializing database and creating tables...")

    # Creates every table defined in models.py; existing tables are left alone.
    db.create_all()

    print("Database tables created successfully!")
