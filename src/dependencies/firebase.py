import os

import firebase_admin
import google.auth
from firebase_admin import auth, credentials


def initialize_firebase():
    """Initialize Firebase Admin SDK (token verification for the HTTP surface)"""
    if firebase_admin._apps:
        return

    if os.getenv("DEPLOYMENT", "cloud") == "local":
        # Local dev: must use service account key
        service_account_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if not service_account_path:
            raise ValueError("GOOGLE_APPLICATION_CREDENTIALS environment variable not set.")
        firebase_admin.initialize_app(credentials.Certificate(service_account_path))
        return

    # Cloud Run (or any Google-managed environment): use ADC
    try:
        _, project_id = google.auth.default()
    except Exception as e:
        raise RuntimeError(f"Failed to get default credentials: {e}")

    if not project_id:
        raise ValueError("Project ID could not be inferred from environment.")

    firebase_admin.initialize_app(
        credential=credentials.ApplicationDefault(),
        options={"projectId": project_id},
    )


__all__ = ["auth", "initialize_firebase"]
