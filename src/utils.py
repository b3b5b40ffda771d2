import yaml

from pathlib import Path
from typing import Any

def load_config(config_path: str = 'cfg/config.yaml', subconfig: str | None = None, required: bool = True) -> dict[str, Any]:
   """
   Load configuration from YAML file.

   Args:
      config_path: Path to config.yaml file.
      subconfig: Optional top-level section to return instead of the whole file.
      required: Raise if the file does not exist (otherwise return an empty dict).

   Returns:
      Configuration (or the requested section) as a dictionary.
   """
   config_file = Path(config_path)
   if not config_file.exists():
      if required:
         raise FileNotFoundError(f"config.yaml not found at: {config_path}")
      return {}

   try:
      with open(config_file, 'r', encoding='utf-8') as f:
         config = yaml.safe_load(f) or {}
   except (OSError, yaml.YAMLError) as e:
      raise RuntimeError(f"Failed to load {config_path}: {e}") from e

   if not isinstance(config, dict):
      raise RuntimeError(f"Failed to load {config_path}: top level must be a mapping")

   if subconfig:
      section = config.get(subconfig) or {}
      if not isinstance(section, dict):
         raise RuntimeError(f"Section '{subconfig}' in {config_path} must be a mapping")
      return section
   return config
