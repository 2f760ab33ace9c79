import argparse
import json
from pathlib import Path

from dataset_loader import CURRENT_VERSION, META_FILENAME, Meta


class MetaUpgrader:
    """Rewrites a dataset's meta.json at the current version."""

    def __init__(self, dataset_dir: Path):
        self.dataset_dir = dataset_dir
        self.meta_path = dataset_dir / META_FILENAME

    # =========================
    # FASE 1: LEER
    # =========================

    def read(self):
        print(f"🔍 Leyendo {self.meta_path}")
        with open(self.meta_path, "r") as f:
            data = json.load(f)
        version = data.get("version")
        print(f"   → version {version}, current is {CURRENT_VERSION}")
        return version, Meta.from_dict(data)

    # =========================
    # FASE 2: ESCRIBIR
    # =========================

    def write(self, meta: Meta):
        backup = self.meta_path.with_name(META_FILENAME + ".bak")
        self.meta_path.replace(backup)
        meta.to_disk(self.meta_path)
        print(f"✅ Meta escrita (backup en {backup.name})")

    # =========================
    # PIPELINE
    # =========================

    def run(self) -> bool:
        """Returns True when the file was rewritten."""
        version, meta = self.read()
        if version == CURRENT_VERSION:
            print("✅ Ya está en la versión actual")
            return False
        self.write(meta)
        return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Upgrade a dataset meta.json")
    parser.add_argument("dataset_dir", type=Path)
    args = parser.parse_args()

    MetaUpgrader(args.dataset_dir).run()
