# cabinetpm_sync/DB/__init__.py
