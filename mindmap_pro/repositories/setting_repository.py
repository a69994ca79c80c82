"""Runtime settings repository."""

from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..models import Setting


class SettingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[Setting]:
        return self.db.get(Setting, key)

    def all(self) -> List[Setting]:
        return self.db.query(Setting).order_by(Setting.key).all()

    def upsert(self, key: str, value: Any, description: Optional[str] = None) -> Setting:
        setting = self.get(key)
        if setting is None:
            setting = Setting(key=key, value=value, description=description)
            self.db.add(setting)
        else:
            setting.value = value
            if description is not None:
                setting.description = description
        self.db.flush()
        return setting
