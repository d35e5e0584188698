# cabinetpm_sync/Utils/__init__.py
