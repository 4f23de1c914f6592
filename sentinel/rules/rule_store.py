"""File-based JSON storage for escalation rules.

Operators create and edit rules here; the rule engine only ever receives
the whole enabled set at once via :meth:`RuleStore.load_into`.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from sentinel.rules.engine import RuleEngine, RuleSnapshot
from sentinel.rules.loader import DEFAULT_RULES, load_rules, rule_from_dict, rule_to_dict
from sentinel.rules.models import EscalationRule
from sentinel.store.jsonfile import read_json, write_json

_EDITABLE_FIELDS = ("name", "conditions", "actions", "priority", "enabled")


class RuleStore:
    """File-based storage for escalation rules.

    Storage path: ``~/.sentinel/rules/`` with:
    - ``rules.json`` -- list of rule dicts

    An empty store is seeded with the default rules on first read.
    """

    def __init__(self, base_dir: Optional[str | Path] = None, seed_defaults: bool = True) -> None:
        if base_dir is None:
            self._base = Path.home() / ".sentinel" / "rules"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._rules_path = self._base / "rules.json"
        self._lock = threading.Lock()
        if seed_defaults and not self._rules_path.exists():
            self._write_json([self._stamp(dict(d)) for d in DEFAULT_RULES])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict]:
        return read_json(self._rules_path, [])

    def _write_json(self, data: list[dict]) -> None:
        write_json(self._rules_path, data)

    @staticmethod
    def _stamp(data: dict) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        data.setdefault("created_at", now)
        data["updated_at"] = now
        return data

    # ------------------------------------------------------------------
    # Rule CRUD
    # ------------------------------------------------------------------

    def create_rule(self, data: dict) -> dict:
        """Validate and persist a new rule. Returns the stored dict."""
        rule = rule_from_dict(data)
        with self._lock:
            rules = self._read_json()
            if any(r["id"] == rule.id for r in rules):
                raise ValueError(f"Escalation rule {rule.id} already exists")
            stored = self._stamp(rule_to_dict(rule))
            rules.append(stored)
            self._write_json(rules)
        return stored

    def get_rule(self, rule_id: str) -> Optional[dict]:
        """Look up a rule by ID. Returns None if not found."""
        for r in self._read_json():
            if r["id"] == rule_id:
                return r
        return None

    def update_rule(self, rule_id: str, **kwargs: object) -> Optional[dict]:
        """Update fields on an existing rule. Returns updated dict or None."""
        with self._lock:
            rules = self._read_json()
            for i, r in enumerate(rules):
                if r["id"] != rule_id:
                    continue
                candidate = dict(r)
                for key, value in kwargs.items():
                    if key in _EDITABLE_FIELDS:
                        candidate[key] = value
                validated = rule_to_dict(rule_from_dict(candidate))
                validated["created_at"] = r.get("created_at", "")
                rules[i] = self._stamp(validated)
                self._write_json(rules)
                return rules[i]
        return None

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule by ID. Returns True if deleted."""
        with self._lock:
            rules = self._read_json()
            remaining = [r for r in rules if r["id"] != rule_id]
            if len(remaining) == len(rules):
                return False
            self._write_json(remaining)
            return True

    def toggle_rule(self, rule_id: str, enabled: bool) -> Optional[dict]:
        """Enable or disable a rule. Returns updated dict or None."""
        return self.update_rule(rule_id, enabled=enabled)

    def replace_all(self, rules: Iterable[EscalationRule]) -> list[dict]:
        """Replace the stored set wholesale, e.g. from an imported file."""
        stored = [self._stamp(rule_to_dict(r)) for r in rules]
        ids = [r["id"] for r in stored]
        if len(ids) != len(set(ids)):
            raise ValueError("Escalation rule ids must be unique")
        with self._lock:
            self._write_json(stored)
        return stored

    def import_file(self, path: str | Path) -> list[dict]:
        return self.replace_all(load_rules(path))

    # ------------------------------------------------------------------
    # Engine integration
    # ------------------------------------------------------------------

    def rules(self) -> list[EscalationRule]:
        return [rule_from_dict(r) for r in self._read_json()]

    def load_into(self, engine: RuleEngine) -> RuleSnapshot:
        """Swap the engine's rule set for the stored one."""
        return engine.reload(self.rules())
