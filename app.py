import logging

import redis
from flask import Flask
from flask_cors import CORS

import config
from extensions import db
from errors import register_error_handlers
from grading import GradingRunner, recover_stalled_grading

import routes

logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


def create_app(overrides=None):
    overrides = overrides or {}
    configure_logging(overrides.get('LOG_LEVEL', config.LOG_LEVEL))

    app = Flask(__name__)
    CORS(app)

    # Configure the database from the environment variable
    database_url = overrides.get('DATABASE_URL', config.DATABASE_URL)
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Please create a .env file or set the environment variable.")

    # Heroku/Render use postgres://, but SQLAlchemy needs postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['GRADING_RETRIES'] = config.GRADING_RETRIES
    app.config['GRADING_EXECUTOR'] = config.GRADING_EXECUTOR
    app.config['GRADING_MAX_WORKERS'] = config.GRADING_MAX_WORKERS
    app.config['GRADING_LEASE_SECONDS'] = config.GRADING_LEASE_SECONDS
    app.config['RECOVER_STALLED_GRADING'] = True
    app.config.update({k: v for k, v in overrides.items() if k not in ('DATABASE_URL', 'LOG_LEVEL')})

    # Initialize the database with the app
    db.init_app(app)

    # Connect to Redis from the environment variable
    redis_url = overrides.get('REDIS_URL', config.REDIS_URL)
    try:
        r = redis.from_url(redis_url, decode_responses=True)
        r.ping()  # Check connection
        logger.info("Successfully connected to Redis.")
    except (redis.exceptions.ConnectionError, TypeError) as e:
        logger.warning("Could not connect to Redis: %s", e)
        r = None
    app.extensions['redis'] = r

    app.extensions['grading_runner'] = GradingRunner(
        mode=app.config['GRADING_EXECUTOR'],
        max_workers=app.config['GRADING_MAX_WORKERS'],
    )

    register_error_handlers(app)
    # Initialize routes
    routes.init_app(app, r, db)

    # Create database tables if they don't exist
    with app.app_context():
        db.create_all()
        if app.config['RECOVER_STALLED_GRADING']:
            recover_stalled_grading()

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(port=5001, debug=True)
