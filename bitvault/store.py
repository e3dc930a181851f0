import logging
from dataclasses import dataclass, field
from pathlib import Path

from verystable.serialization import VSJson

from .errors import StoreError

log = logging.getLogger("bitvault.store")


@dataclass(frozen=True)
class VaultRecord:
    label: str
    address: str


@dataclass
class VaultStore:
    """Persists the human-facing label -> address record of each vault."""
    records: list[VaultRecord] = field(default_factory=list)
    filepath: Path | None = None

    _json_exclude = ("filepath",)

    @classmethod
    def open(cls, filepath: Path) -> "VaultStore":
        if not filepath.exists():
            return cls(filepath=filepath)
        try:
            obj = VSJson.loads(filepath.read_text())
        except (OSError, ValueError) as e:
            raise StoreError(f"failed to read vault store {filepath}: {e}") from e
        if not isinstance(obj, cls):
            raise StoreError(f"{filepath} is not a vault store")
        obj.filepath = filepath
        return obj

    def save(self) -> None:
        assert self.filepath
        try:
            self.filepath.write_text(VSJson.dumps(self, indent=2))
        except OSError as e:
            raise StoreError(f"failed to write vault store {self.filepath}: {e}") from e
        log.info("saved %d vault record(s) to %s", len(self.records), self.filepath)

    def insert(self, label: str, address: str) -> None:
        if not label:
            raise StoreError("vault label must not be empty")
        if self.get(label):
            raise StoreError(f"a vault named '{label}' already exists")
        self.records.append(VaultRecord(label, address))
        self.save()

    def read_all(self) -> list[VaultRecord]:
        return list(self.records)

    def get(self, label: str) -> VaultRecord | None:
        for rec in self.records:
            if rec.label == label:
                return rec
        return None


# Wire up JSON serialization for the classes above.
VSJson.add_allowed_classes(VaultStore, VaultRecord)
