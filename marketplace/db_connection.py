# marketplace/db_connection.py
import os
import logging
from typing import Callable

from google.cloud import storage, secretmanager
from google.cloud.exceptions import NotFound as BlobNotFound
from google.oauth2 import service_account
from google.auth import default as google_auth_default

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from marketplace.entities import Base

logger = logging.getLogger("adspace_backend")


class DbConnection:
    def __init__(self, database_url: str | None = None) -> None:
        # ---- database env config ----
        self.PROJECT_ID   = os.getenv("GOOGLE_CLOUD_PROJECT", "")
        self.DB_HOST      = os.getenv("DB_HOST", "")
        self.DB_PORT      = int(os.getenv("DB_PORT", "5432"))
        self.DB_NAME      = os.getenv("DB_NAME", "")
        self.DB_USER      = os.getenv("DB_USER", "")
        self.DB_PASSWORD  = os.getenv("DB_PASSWORD", "")
        self.DB_SECRET_ID = os.getenv("DB_SECRET_ID", "")

        self._creds = None
        self._storage_client = None
        self._engine = None
        self._sessionmaker = None

        # DATABASE_URL wins, then a Postgres host, then the local sqlite file
        self.DATABASE_URL = database_url or os.getenv("DATABASE_URL", "")
        if not self.DATABASE_URL:
            if self.DB_HOST:
                self.DATABASE_URL = (
                    f"postgresql+pg8000://{self.DB_USER}:{self._get_db_password_lazy()}"
                    f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
                )
            else:
                self.DATABASE_URL = "sqlite:///adspace_market.db"

    # -------- Google credentials --------
    def _build_creds(self):
        key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        scopes = ["https://www.googleapis.com/auth/cloud-platform"]
        if key_path and os.path.exists(key_path):
            return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
        creds, _ = google_auth_default(scopes=scopes)
        return creds

    @property
    def creds(self):
        if self._creds is None:
            self._creds = self._build_creds()
        return self._creds

    @property
    def storage_client(self) -> storage.Client:
        if self._storage_client is None:
            self._storage_client = storage.Client(credentials=self.creds)
        return self._storage_client

    # -------- Postgres password --------
    def _get_db_password_lazy(self) -> str:
        if self.DB_PASSWORD:
            return self.DB_PASSWORD
        if self.DB_SECRET_ID:
            client = secretmanager.SecretManagerServiceClient(credentials=self.creds)
            name = client.secret_version_path(self.PROJECT_ID, self.DB_SECRET_ID, "latest")
            resp = client.access_secret_version(request={"name": name})
            self.DB_PASSWORD = resp.payload.data.decode("utf-8")
            return self.DB_PASSWORD
        raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")

    # -------- SQLAlchemy engine / Session factory --------
    def get_engine(self):
        if self._engine is None:
            if self.DATABASE_URL.startswith("sqlite"):
                logger.info(f"[DB] Using SQLite URL: {self.DATABASE_URL}")
                self._engine = create_engine(
                    self.DATABASE_URL,
                    connect_args={"check_same_thread": False},
                )
            else:
                logger.info(f"[DB] Connecting to Postgres at {self.DB_HOST or '(DATABASE_URL)'}")
                # pg8000 connect timeout, seconds
                self._engine = create_engine(
                    self.DATABASE_URL,
                    pool_pre_ping=True,
                    connect_args={"timeout": 10},
                )
        return self._engine

    def create_all(self) -> None:
        Base.metadata.create_all(self.get_engine())

    def build_db_session_factory(self) -> Callable[[], Session]:
        if not self._sessionmaker:
            self._sessionmaker = sessionmaker(
                bind=self.get_engine(),
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory

    # -------- Bucket blobs --------
    def upload_to_gcs(self, bucket_name: str, blob_path: str, data: bytes,
                      content_type: str = "image/jpeg") -> str:
        bucket = self.storage_client.bucket(bucket_name)
        blob = bucket.blob(blob_path)
        blob.upload_from_string(data, content_type=content_type)
        return f"gs://{bucket_name}/{blob_path}"

    def download_from_gcs(self, bucket_name: str, blob_path: str) -> tuple[bytes, str] | None:
        bucket = self.storage_client.bucket(bucket_name)
        blob = bucket.get_blob(blob_path)
        if blob is None:
            return None
        return blob.download_as_bytes(), (blob.content_type or "application/octet-stream")

    def delete_from_gcs(self, bucket_name: str, blob_path: str) -> None:
        bucket = self.storage_client.bucket(bucket_name)
        blob = bucket.blob(blob_path)
        try:
            blob.delete()
        except BlobNotFound as e:
            logger.warning("Could not delete gs://%s/%s: %s", bucket_name, blob_path, e)
