"""
Prompt library on top of a small JSON key-value store.

Store keys (same names the browser extension used, so exported files
stay interchangeable):
  promptHistory   - list of saved templates
  anthropicApiKey - credential forwarded to the scoring service
Missing file or missing keys always read as empty.
"""

import json
import os
import time
from datetime import datetime

from chain_keeper.errors import LibraryError
from chain_keeper.models import CATEGORIES, PromptTemplate

HISTORY_KEY = "promptHistory"
API_KEY = "anthropicApiKey"
API_KEY_ENV = "CHAIN_KEEPER_API_KEY"
EXPORT_VERSION = "1.0"


class KeyValueStore:
    def __init__(self, path):
        self.path = path

    def _read(self):
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[Error] Failed to load {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key, default=None):
        return self._read().get(key, default)

    def set(self, key, value):
        data = self._read()
        data[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)


def _now_ms():
    return int(time.time() * 1000)


class PromptLibrary:
    def __init__(self, store, backup=None):
        self.store = store
        self.backup = backup

    # --- credential ---

    def api_key(self):
        return os.environ.get(API_KEY_ENV) or self.store.get(API_KEY, "") or ""

    def set_api_key(self, key):
        self.store.set(API_KEY, key.strip())
        print("[Library] API key saved")

    # --- templates ---

    def _load(self):
        """Parsed templates, plus the raw entries that could not be parsed."""
        items, unreadable = [], []
        for raw in self.store.get(HISTORY_KEY, []) or []:
            try:
                items.append(PromptTemplate.from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                print(f"[Library] Skipping unreadable template: {e}")
                unreadable.append(raw)
        return items, unreadable

    def templates(self):
        return self._load()[0]

    def _save(self, templates, message, keep_unreadable=True):
        entries = [t.to_dict() for t in templates]
        if keep_unreadable:
            # unreadable entries go back untouched
            entries += self._load()[1]
        self.store.set(HISTORY_KEY, entries)
        if self.backup is not None:
            self.backup.commit_local(message)

    def _next_id(self, templates):
        taken = {t.id for t in templates}
        candidate = _now_ms()
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def get(self, template_id):
        for t in self.templates():
            if t.id == str(template_id):
                return t
        raise LibraryError(f"No saved prompt with id {template_id}")

    def add(self, title, prompt, category="other", score=None, chain=None):
        """Saves a prompt, or a conversation chain when `chain` is given."""
        if category not in CATEGORIES:
            category = "other"
        templates = self.templates()
        is_chain = bool(chain)
        template = PromptTemplate(
            id=self._next_id(templates),
            title=title or "Untitled",
            prompt=chain[0].prompt if is_chain else prompt,
            category=category,
            score=score,
            timestamp=_now_ms(),
            is_chain=is_chain,
            chain_steps=list(chain) if is_chain else None,
        )
        templates.append(template)
        self._save(templates, f"Save: {template.title}")
        print(f"[Library] Saved {'chain' if is_chain else 'prompt'} {template.id}: {template.title}")
        return template

    def toggle_favorite(self, template_id):
        templates = self.templates()
        for t in templates:
            if t.id == str(template_id):
                t.is_favorite = not t.is_favorite
                self._save(templates, f"Favorite: {t.title}")
                return t.is_favorite
        raise LibraryError(f"No saved prompt with id {template_id}")

    def delete(self, template_id):
        templates = self.templates()
        remaining = [t for t in templates if t.id != str(template_id)]
        if len(remaining) == len(templates):
            raise LibraryError(f"No saved prompt with id {template_id}")
        self._save(remaining, f"Delete: {template_id}")

    def list(self, category="all"):
        """Favorites first, then newest first."""
        items = self.templates()
        if category and category != "all":
            items = [t for t in items if t.category == category]
        return sorted(items, key=lambda t: (not t.is_favorite, -t.timestamp))

    # --- export / import ---

    def export(self, ids=None):
        templates = self.templates()
        if ids:
            wanted = {str(i) for i in ids}
            templates = [t for t in templates if t.id in wanted]
        return {
            "version": EXPORT_VERSION,
            "exportDate": datetime.now().isoformat(),
            "prompts": [t.to_dict() for t in templates],
        }

    def write_export(self, path, ids=None):
        data = self.export(ids)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        print(f"[Library] Exported {len(data['prompts'])} prompts to {path}")
        return len(data["prompts"])

    @staticmethod
    def parse_import(data):
        prompts = data.get("prompts") if isinstance(data, dict) else None
        if not isinstance(prompts, list):
            raise LibraryError("Invalid file format")
        try:
            return [PromptTemplate.from_dict(p) for p in prompts]
        except (KeyError, TypeError, ValueError) as e:
            raise LibraryError(f"Invalid prompt in import file: {e}") from e

    def import_templates(self, imported, replace=False):
        if replace:
            templates = list(imported)
        else:
            templates = self.templates() + list(imported)
        self._save(templates, f"Import: {len(imported)} prompts", keep_unreadable=not replace)
        return len(imported)

    def import_file(self, path, replace=False):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise LibraryError(f"Error reading file: {e}") from e
        count = self.import_templates(self.parse_import(data), replace=replace)
        print(f"[Library] {'Replaced library with' if replace else 'Imported'} {count} prompts")
        return count
