# cabinetpm_sync/Metrics/__init__.py
