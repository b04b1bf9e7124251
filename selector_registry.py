import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from selenium.webdriver.common.by import By

from element_locator import SelectorStep, SelectorStrategy

BY_MAP = {
    "ID": By.ID,
    "NAME": By.NAME,
    "XPATH": By.XPATH,
    "CSS_SELECTOR": By.CSS_SELECTOR,
    "TAG_NAME": By.TAG_NAME,
    "CLASS_NAME": By.CLASS_NAME,
    "LINK_TEXT": By.LINK_TEXT,
    "PARTIAL_LINK_TEXT": By.PARTIAL_LINK_TEXT,
}


def _parse_step(item) -> Optional[SelectorStep]:
    if not isinstance(item, dict):
        return None
    by_name = str(item.get("by", "")).upper().strip()
    selector_value = str(item.get("value", "")).strip()
    if by_name in BY_MAP and selector_value:
        return BY_MAP[by_name], selector_value
    return None


def _parse_strategy(item) -> Optional[SelectorStrategy]:
    # A bare mapping is a one-step strategy; a list of mappings is a chain.
    raw_steps = item if isinstance(item, list) else [item]
    steps = [_parse_step(raw) for raw in raw_steps]
    if not steps or any(step is None for step in steps):
        return None
    return tuple(steps)


def load_selector_registry(path: str = "selectors.yml") -> Dict[str, List[SelectorStrategy]]:
    registry_path = Path(path)
    if not registry_path.exists():
        return {}

    try:
        raw = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logging.warning("Unable to parse selector registry file %s: %s", registry_path, exc)
        return {}
    if not isinstance(raw, dict):
        return {}

    parsed: Dict[str, List[SelectorStrategy]] = {}
    for key, value in raw.items():
        if not isinstance(value, list):
            continue
        strategies: List[SelectorStrategy] = []
        for item in value:
            strategy = _parse_strategy(item)
            if strategy is None:
                logging.warning("Ignoring malformed selector entry under %s: %r", key, item)
                continue
            strategies.append(strategy)
        if strategies:
            parsed[str(key).strip()] = strategies
    return parsed


def apply_selector_overrides(target, path: str = "selectors.yml") -> None:
    """Prepend strategies from ``path`` to the matching selector lists of ``target``.

    Only the attributes of ``target`` itself are replaced, so the built-in defaults
    declared on its class stay untouched for other instances.
    """
    registry = load_selector_registry(path)
    if not registry:
        return

    for selector_name, override_strategies in registry.items():
        if not hasattr(target, selector_name):
            logging.warning("Selector registry entry %s does not match any known target", selector_name)
            continue
        default_strategies = list(getattr(target, selector_name))
        merged = list(override_strategies)
        for strategy in default_strategies:
            if strategy not in merged:
                merged.append(strategy)
        setattr(target, selector_name, merged)
        logging.info(
            "Selector registry applied for %s (%d overrides + %d defaults)",
            selector_name,
            len(override_strategies),
            len(default_strategies),
        )
