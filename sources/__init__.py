import copy
from typing import Any, Dict, List

from core.logger import get_logger
from core.models import SiteProfile, SiteTarget

from . import profiles

logger = get_logger(__name__)

SOURCES: Dict[str, SiteProfile] = {p.name: p for p in profiles.BUILTIN_PROFILES}


def resolve_profiles(cfg: Dict[str, Any] | None = None) -> List[SiteProfile]:
    """
    Apply the optional "sites" section of config.json to the built-in
    profiles. Unknown site names are logged and skipped.
    """
    resolved = {name: copy.deepcopy(p) for name, p in SOURCES.items()}

    for site in (cfg or {}).get("sites", []):
        if not isinstance(site, dict):
            logger.error("Invalid site entry in config: %s", site)
            continue
        name = str(site.get("name", "")).strip().lower()
        profile = resolved.get(name)
        if profile is None:
            logger.error("No profile registered for site '%s'; skipping.", name)
            continue

        profile.enabled = bool(site.get("enabled", True))
        targets = site.get("targets")
        if isinstance(targets, list):
            cleaned = [
                SiteTarget(str(t["url"]).strip(), str(t.get("merchant", "")).strip())
                for t in targets
                if isinstance(t, dict) and str(t.get("url", "")).strip()
            ]
            if cleaned:
                profile.targets = cleaned
            else:
                logger.warning("Site '%s' lists no usable targets; keeping defaults.", name)

    for p in resolved.values():
        if not p.enabled:
            logger.info("Site '%s' is disabled; skipping.", p.name)
    return [p for p in resolved.values() if p.enabled]
