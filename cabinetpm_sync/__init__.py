# cabinetpm_sync/__init__.py
# Offline-first replication between field-device SQLite stores and the central CabinetPM store.
__version__ = "0.3.0"
