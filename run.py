# run.py
# Description: Entry point for running cabinetpm_sync from a source checkout without installing it.
#
# Imports
from pathlib import Path
import sys
#
# Local Imports
# --- Add project root to sys.path ---
project_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_dir))
try:
    from cabinetpm_sync.cli import main
except ModuleNotFoundError as e:
    print(f"ERROR: run.py: Failed to import from cabinetpm_sync package.", file=sys.stderr)
    print(f"       Ensure '{project_dir}' contains 'cabinetpm_sync' and its dependencies are installed.", file=sys.stderr)
    print(f"       Original error: {e}", file=sys.stderr)
    sys.exit(1)
#
#######################################################################################################################
#
# Functions:

if __name__ == "__main__":
    sys.exit(main())

#
# End of run.py
#######################################################################################################################
