# ==============================================================================
# Configuration Loader
# ==============================================================================

import copy
import os
import sys

import yaml

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
SELECTORS_PATH = os.path.join(PACKAGE_DIR, "selectors.yaml")  # shared selectors
CONFIG_PATH = os.path.join(os.getcwd(), "config.yaml")  # personal settings

DEFAULT_SYSTEM = {
    "cdp_url": "http://localhost:9222",
    "profile_dir": None,
    "start_url": "https://chatgpt.com/",
    "poll_interval": 1.0,
    "settle_delay": 1.5,
    "max_checks": 120,
    "initial_delay": 2.0,
    "submit_delay": 0.5,
    "nav_settle_delay": 0.1,
    "service_url": "https://web-production-80cf2.up.railway.app",
    "service_timeout": 60,
    "response_limit": 2000,
    "data_dir": "chain_keeper_data",
}


def load_selectors(path=SELECTORS_PATH):
    """
    Loads the shared selectors file. Without it nothing can be located,
    so a missing or broken file stops the process.
    """
    if not os.path.exists(path):
        print(f"[Critical Error] Selectors file not found at: {path}")
        sys.exit(1)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except Exception as e:
        print(f"[Error] Failed to load selectors.yaml: {e}")
        sys.exit(1)

    if not isinstance(data.get('sites'), dict):
        print(f"[Critical Error] No 'sites' section in {path}")
        sys.exit(1)
    return data


def load_config(path=CONFIG_PATH):
    """
    Loads the optional user config and fills in defaults for every
    key of the 'system' section.
    """
    config = {"system": copy.deepcopy(DEFAULT_SYSTEM)}

    if not os.path.exists(path):
        return config
    try:
        with open(path, 'r', encoding='utf-8') as f:
            user_data = yaml.safe_load(f) or {}
    except Exception as e:
        print(f"[Error] Failed to load config.yaml: {e}")
        sys.exit(1)

    if not isinstance(user_data, dict):
        print(f"[Error] config.yaml must be a mapping, got {type(user_data).__name__}")
        sys.exit(1)

    for key, value in user_data.items():
        if key == "system" and isinstance(value, dict):
            config["system"].update(value)
        else:
            config[key] = value
    return config
