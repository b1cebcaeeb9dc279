import json
import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore

from tripdraw import config

logger = logging.getLogger(__name__)


def initialize_firebase():
    """Initialise the default Firebase app once, from env JSON or a key file."""
    if firebase_admin._apps:  # already initialised
        return firebase_admin.get_app()

    if config.FIREBASE_SERVICE_ACCOUNT_CONTENT:
        cred = credentials.Certificate(json.loads(config.FIREBASE_SERVICE_ACCOUNT_CONTENT))
        app = firebase_admin.initialize_app(cred)
        logger.info("Firebase initialized using environment variable.")
        return app

    if os.path.exists(config.FIREBASE_SERVICE_ACCOUNT_PATH):
        cred = credentials.Certificate(config.FIREBASE_SERVICE_ACCOUNT_PATH)
        app = firebase_admin.initialize_app(cred)
        logger.info("Firebase initialized using local file path.")
        return app

    logger.error(
        f"Firebase service account not found. Expected env var FIREBASE_SERVICE_ACCOUNT_CONTENT "
        f"or file at {config.FIREBASE_SERVICE_ACCOUNT_PATH}."
    )
    raise FileNotFoundError(
        f"Firebase service account not found. Expected env var FIREBASE_SERVICE_ACCOUNT_CONTENT "
        f"or file at {config.FIREBASE_SERVICE_ACCOUNT_PATH}."
    )


def get_db():
    app = initialize_firebase()
    return firestore.client(app=app)
