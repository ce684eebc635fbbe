import sys
import os

# Add the project root directory to sys.path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.abspath(os.path.join(current_dir, ".."))
sys.path.insert(0, project_root)

import asyncio
import logging
from pathlib import Path

from sap_dashboard.analysis.unused_roles import unused_roles
from sap_dashboard.core.data_loader import load_workbook
from sap_dashboard.core.derivation import ClassificationRules, derive
from sap_dashboard.core.export import export_collection
from sap_dashboard.core.windows import window_for_preset
from sap_dashboard.utils.config import load_config

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')
logger = logging.getLogger("analyze_unused_roles")

# File paths
DATA_DIR = os.path.join(os.path.dirname(__file__), '../data')
DEFAULT_WORKBOOK_FILE = os.path.join(DATA_DIR, 'Logs_for_Analysis_1.xlsx')
OUTPUT_FILE = os.path.join(DATA_DIR, 'unused_roles.xlsx')


def resolve_config(config):
    """Fall back to the bundled workbook when neither a source nor a blob is configured."""
    if config.get("WORKBOOK_SOURCE") or (config.get("AZURE_BLOB_SAS_URL") and config.get("WORKBOOK_BLOB_NAME")):
        return config
    return {**config, "WORKBOOK_SOURCE": DEFAULT_WORKBOOK_FILE}


def main():
    # load_config() reads .env, so env lookups come after it
    config = resolve_config(load_config())
    # Optional named window, e.g. UNUSED_ROLES_WINDOW=last-3-months
    window_preset = os.getenv("UNUSED_ROLES_WINDOW", "all")

    tables = asyncio.run(load_workbook(config))
    snapshot = derive(
        tables,
        execution_window=window_for_preset(window_preset),
        rules=ClassificationRules.from_config(config),
    )
    roles = unused_roles(snapshot)
    for role in roles:
        logger.info(f"{role.role_name}: {role.users_assigned} users, {role.tcodes} tcodes, tags={role.tags}")

    os.makedirs(os.path.dirname(OUTPUT_FILE), exist_ok=True)
    Path(OUTPUT_FILE).write_bytes(export_collection(snapshot, "unused-roles", "xlsx"))
    print(f"Saved {len(roles)} unused roles ({window_preset} window) to {OUTPUT_FILE}")
    return roles


if __name__ == '__main__':
    main()
