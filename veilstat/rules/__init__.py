from veilstat.rules.loader import default_rules, load_rules
from veilstat.rules.models import Rules

__all__ = ["Rules", "default_rules", "load_rules"]
