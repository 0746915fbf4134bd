import copy
import json
import logging
import os


def _base_dir():
    base = os.path.join(os.path.expanduser('~'), '.rotacompass')
    os.makedirs(base, exist_ok=True)
    return base


def _config_path():
    return os.path.join(_base_dir(), 'rotacompass_config.json')


def default_config():
    # sensible defaults
    return {
        'db_path': os.path.join(os.path.expanduser('~'), '.rotacompass', 'rotacompass.db'),
        'generation': {'horizon_days': 30},
        'grid': {'window_days': 56},
    }


def _merge(defaults: dict, loaded: dict) -> dict:
    out = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str = None):
    path = path or _config_path()
    if not os.path.exists(path):
        return default_config()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded = json.load(f)
    except (OSError, ValueError) as e:
        logging.warning(f"[RotaCompass] Config {path} unreadable, using defaults: {e}")
        return default_config()
    if not isinstance(loaded, dict):
        logging.warning(f"[RotaCompass] Config {path} is not a JSON object, using defaults")
        return default_config()
    return _merge(default_config(), loaded)


def save_config(cfg: dict, path: str = None):
    path = path or _config_path()
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(cfg, f, ensure_ascii=False, indent=2)
