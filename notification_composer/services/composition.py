#!/usr/bin/env python3
"""
Composition Model

In-memory representation of one phone mockup: skin, status bar,
wallpaper reference and an ordered notification stack.

All operations are synchronous and perform no I/O. The stack is never
empty and notification ids are unique within it.

Field edits go through a closed set of typed updates (one per field),
validated at the model boundary. Invalid input raises InvalidFieldError
and leaves the record unchanged.

Usage:
    from notification_composer.services.composition import (
        CompositionState, NotificationField
    )

    state = CompositionState.create_default()
    new_id = state.add_notification()
    state.update_field(new_id, NotificationField.AMOUNT, "1.234,56")
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from ..config.composer_config import StatusBarConfig
from ..config.skin_catalog import DEFAULT_SKIN_ID, Skin, find_skin_by_name, get_skin
from .formatters import InvalidFieldError, current_time_text, parse_amount
from .notification_text import Institution, TransactionKind
from .wallpaper_catalog import (
    EmbeddedWallpaper,
    WallpaperReference,
    WallpaperReferenceError,
    decode_data_uri,
    default_wallpaper,
    wallpaper_from_string,
)

logger = logging.getLogger(__name__)


class CompositionError(Exception):
    """Raised when a composition operation fails"""
    pass


class NotificationNotFoundError(CompositionError, KeyError):
    """Raised when a notification id is not in the stack"""
    pass


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidFieldError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidFieldError(f"{name} must be an integer, got {value!r}")


# ==================================
# STATUS BAR
# ==================================

@dataclass
class StatusBarSettings:
    """
    Status bar shown on top of the screen.

    signal_bars, wifi_bars and battery_percent are always kept inside their
    ranges. text_color only changes contrast.
    """
    time: str = StatusBarConfig.DEFAULT_TIME
    signal_bars: int = StatusBarConfig.DEFAULT_SIGNAL
    wifi_on: bool = True
    wifi_bars: int = StatusBarConfig.WIFI_BARS_MAX
    battery_percent: int = StatusBarConfig.DEFAULT_BATTERY
    text_color: str = 'white'

    def __post_init__(self):
        self.signal_bars = _clamp(
            _as_int('signal_bars', self.signal_bars),
            StatusBarConfig.SIGNAL_MIN, StatusBarConfig.SIGNAL_MAX
        )
        self.wifi_bars = _clamp(
            _as_int('wifi_bars', self.wifi_bars),
            StatusBarConfig.WIFI_BARS_MIN, StatusBarConfig.WIFI_BARS_MAX
        )
        self.battery_percent = _clamp(
            _as_int('battery_percent', self.battery_percent),
            StatusBarConfig.BATTERY_MIN, StatusBarConfig.BATTERY_MAX
        )
        if self.text_color not in StatusBarConfig.TEXT_COLORS:
            raise InvalidFieldError(
                f"text_color must be one of {StatusBarConfig.TEXT_COLORS}, got {self.text_color!r}"
            )
        if not isinstance(self.time, str):
            raise InvalidFieldError(f"time must be text, got {self.time!r}")
        self.wifi_on = bool(self.wifi_on)

    def updated(self, **changes) -> 'StatusBarSettings':
        """
        Return a copy with some settings changed

        `wifi` accepts either a bool or an older-variant bar count (0-3).

        Raises:
            InvalidFieldError: If a key is unknown or a value is invalid
        """
        allowed = {'time', 'signal_bars', 'wifi', 'wifi_on', 'wifi_bars', 'battery_percent', 'text_color'}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidFieldError(f"Unknown status bar settings: {', '.join(sorted(unknown))}")

        if 'wifi' in changes:
            wifi = changes.pop('wifi')
            if isinstance(wifi, bool):
                changes['wifi_on'] = wifi
            else:
                bars = _as_int('wifi', wifi)
                changes['wifi_bars'] = bars
                changes['wifi_on'] = bars > 0

        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time': self.time,
            'signal_bars': self.signal_bars,
            'wifi_on': self.wifi_on,
            'wifi_bars': self.wifi_bars,
            'battery_percent': self.battery_percent,
            'text_color': self.text_color,
        }


# ==================================
# NOTIFICATIONS
# ==================================

@dataclass
class NotificationRecord:
    """One notification card in the stack"""
    id: str
    app: Institution = Institution.NUBANK
    custom_app_name: str = ''
    custom_icon: Optional[bytes] = None
    transaction_kind: TransactionKind = TransactionKind.PIX_RECEIVED
    amount: Decimal = Decimal('123.45')
    counterparty_name: str = 'Tony Stark'
    timestamp_text: str = 'agora'

    def to_dict(self) -> Dict[str, Any]:
        icon = None
        if self.custom_icon is not None:
            icon = EmbeddedWallpaper(self.custom_icon).to_uri()
        return {
            'id': self.id,
            'app': self.app.value,
            'custom_app_name': self.custom_app_name,
            'custom_icon': icon,
            'transaction_kind': self.transaction_kind.value,
            'amount': str(self.amount),
            'counterparty_name': self.counterparty_name,
            'timestamp_text': self.timestamp_text,
        }


class NotificationField(str, Enum):
    """Editable notification fields"""

    APP = 'app'
    CUSTOM_APP_NAME = 'custom_app_name'
    CUSTOM_ICON = 'custom_icon'
    TRANSACTION_KIND = 'transaction_kind'
    AMOUNT = 'amount'
    COUNTERPARTY_NAME = 'counterparty_name'
    TIMESTAMP_TEXT = 'timestamp_text'


@dataclass(frozen=True)
class FieldUpdate:
    """Base class of the typed field updates"""
    value: Any

    field: ClassVar[NotificationField]

    @classmethod
    def parse(cls, raw: Any) -> 'FieldUpdate':
        return cls(raw)

    def apply(self, record: NotificationRecord) -> None:
        setattr(record, self.field.value, self.value)


def _require_text(name: str, raw: Any) -> str:
    if not isinstance(raw, str):
        raise InvalidFieldError(f"{name} must be text, got {type(raw).__name__}")
    return raw


@dataclass(frozen=True)
class SetApp(FieldUpdate):
    field = NotificationField.APP

    @classmethod
    def parse(cls, raw: Any) -> 'SetApp':
        try:
            return cls(Institution(raw))
        except ValueError:
            raise InvalidFieldError(f"Unknown app: {raw!r}")


@dataclass(frozen=True)
class SetCustomAppName(FieldUpdate):
    field = NotificationField.CUSTOM_APP_NAME

    @classmethod
    def parse(cls, raw: Any) -> 'SetCustomAppName':
        return cls(_require_text('custom_app_name', raw))


@dataclass(frozen=True)
class SetCustomIcon(FieldUpdate):
    field = NotificationField.CUSTOM_ICON

    @classmethod
    def parse(cls, raw: Any) -> 'SetCustomIcon':
        if raw is None or isinstance(raw, bytes):
            return cls(raw)
        if isinstance(raw, str):
            try:
                data, _ = decode_data_uri(raw)
            except WallpaperReferenceError as e:
                raise InvalidFieldError(f"Invalid custom icon: {e}")
            return cls(data)
        raise InvalidFieldError(f"custom_icon must be image bytes or a data URI, got {type(raw).__name__}")


@dataclass(frozen=True)
class SetTransactionKind(FieldUpdate):
    field = NotificationField.TRANSACTION_KIND

    @classmethod
    def parse(cls, raw: Any) -> 'SetTransactionKind':
        try:
            return cls(TransactionKind(raw))
        except ValueError:
            raise InvalidFieldError(f"Unknown transaction kind: {raw!r}")


@dataclass(frozen=True)
class SetAmount(FieldUpdate):
    field = NotificationField.AMOUNT

    @classmethod
    def parse(cls, raw: Any) -> 'SetAmount':
        return cls(parse_amount(raw))


@dataclass(frozen=True)
class SetCounterpartyName(FieldUpdate):
    field = NotificationField.COUNTERPARTY_NAME

    @classmethod
    def parse(cls, raw: Any) -> 'SetCounterpartyName':
        return cls(_require_text('counterparty_name', raw))


@dataclass(frozen=True)
class SetTimestampText(FieldUpdate):
    field = NotificationField.TIMESTAMP_TEXT

    @classmethod
    def parse(cls, raw: Any) -> 'SetTimestampText':
        return cls(_require_text('timestamp_text', raw))


FIELD_UPDATES = {
    NotificationField.APP: SetApp,
    NotificationField.CUSTOM_APP_NAME: SetCustomAppName,
    NotificationField.CUSTOM_ICON: SetCustomIcon,
    NotificationField.TRANSACTION_KIND: SetTransactionKind,
    NotificationField.AMOUNT: SetAmount,
    NotificationField.COUNTERPARTY_NAME: SetCounterpartyName,
    NotificationField.TIMESTAMP_TEXT: SetTimestampText,
}


def make_update(field_name: Any, value: Any) -> FieldUpdate:
    """
    Build the typed update for a field

    Args:
        field_name: NotificationField or its string value
        value: Raw input

    Returns:
        Validated FieldUpdate

    Raises:
        InvalidFieldError: If the field is unknown or the value is invalid
    """
    try:
        notification_field = NotificationField(field_name)
    except ValueError:
        raise InvalidFieldError(f"Unknown notification field: {field_name!r}")

    return FIELD_UPDATES[notification_field].parse(value)


def _new_id() -> str:
    return str(uuid.uuid4())


# ==================================
# PRESETS
# ==================================

@dataclass(frozen=True)
class Preset:
    """Named app/transaction subset of a notification"""
    id: str
    name: str
    app: Institution
    custom_app_name: str = ''
    custom_icon: Optional[bytes] = None
    transaction_kind: TransactionKind = TransactionKind.PIX_RECEIVED

    def updates(self) -> List[FieldUpdate]:
        return [
            SetApp(self.app),
            SetCustomAppName(self.custom_app_name),
            SetCustomIcon(self.custom_icon),
            SetTransactionKind(self.transaction_kind),
        ]

    def to_dict(self) -> Dict[str, Any]:
        icon = EmbeddedWallpaper(self.custom_icon).to_uri() if self.custom_icon else None
        return {
            'id': self.id,
            'name': self.name,
            'app': self.app.value,
            'custom_app_name': self.custom_app_name,
            'custom_icon': icon,
            'transaction_kind': self.transaction_kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Preset':
        """
        Rebuild a preset from a stored fragment

        Raises:
            InvalidFieldError: If the fragment is invalid
        """
        name = _require_text('name', data.get('name', ''))
        if not name.strip():
            raise InvalidFieldError("Preset name must not be empty")
        return cls(
            id=data.get('id') or _new_id(),
            name=name.strip(),
            app=SetApp.parse(data.get('app', Institution.NUBANK.value)).value,
            custom_app_name=SetCustomAppName.parse(data.get('custom_app_name', '')).value,
            custom_icon=SetCustomIcon.parse(data.get('custom_icon')).value,
            transaction_kind=SetTransactionKind.parse(
                data.get('transaction_kind', TransactionKind.PIX_RECEIVED.value)
            ).value,
        )


# ==================================
# COMPOSITION
# ==================================

@dataclass(frozen=True)
class CompositionSnapshot:
    """Read-only copy of a composition, borrowed by renderers and exports"""
    skin: Skin
    status_bar: StatusBarSettings
    wallpaper: WallpaperReference
    notifications: Tuple[NotificationRecord, ...]
    selected_notification_id: Optional[str]


@dataclass
class CompositionState:
    """
    One phone mockup and its notification stack.

    Attributes:
        skin: Selected catalog skin
        status_bar: Status bar settings
        wallpaper: Current wallpaper reference
        notifications: Ordered stack (never empty)
        selected_notification_id: Record being edited
    """
    skin: Skin
    status_bar: StatusBarSettings
    wallpaper: WallpaperReference
    notifications: List[NotificationRecord] = field(default_factory=list)
    selected_notification_id: Optional[str] = None

    @classmethod
    def create_default(cls) -> 'CompositionState':
        """New composition with a single default notification, selected"""
        record = NotificationRecord(id=_new_id())
        return cls(
            skin=get_skin(DEFAULT_SKIN_ID),
            status_bar=StatusBarSettings(),
            wallpaper=default_wallpaper(),
            notifications=[record],
            selected_notification_id=record.id,
        )

    # ----------------------------------
    # Lookup
    # ----------------------------------

    def _index_of(self, notification_id: str) -> int:
        for index, record in enumerate(self.notifications):
            if record.id == notification_id:
                return index
        raise NotificationNotFoundError(f"Notification not found: {notification_id}")

    def get_notification(self, notification_id: str) -> NotificationRecord:
        return self.notifications[self._index_of(notification_id)]

    @property
    def selected_notification(self) -> Optional[NotificationRecord]:
        if self.selected_notification_id is None:
            return None
        return self.get_notification(self.selected_notification_id)

    # ----------------------------------
    # Stack operations
    # ----------------------------------

    def add_notification(self, base: Optional[Mapping[str, Any]] = None) -> str:
        """
        Append a notification and select it

        The new record copies the selected one (or the first), then gets a
        fresh id, a zero amount, a placeholder counterparty and the current
        time. Fields in `base` override the copy.

        Args:
            base: Optional partial fields, keyed by NotificationField value

        Returns:
            Id of the new notification

        Raises:
            InvalidFieldError: If `base` holds an invalid field (stack unchanged)
        """
        updates = [make_update(name, value) for name, value in (base or {}).items()]

        template = self.selected_notification or self.notifications[0]
        record = replace(
            copy.deepcopy(template),
            id=_new_id(),
            amount=Decimal('0'),
            counterparty_name='Novo Contato',
            timestamp_text=current_time_text(),
        )
        for update in updates:
            update.apply(record)

        self.notifications.append(record)
        self.selected_notification_id = record.id
        logger.debug(f"Added notification {record.id} ({len(self.notifications)} in stack)")
        return record.id

    def remove_notification(self, notification_id: str) -> None:
        """
        Remove a notification, keeping the stack non-empty

        Removing the last record seeds one default record and selects it.
        Removing the selected record selects the first remaining one.

        Raises:
            NotificationNotFoundError: If the id is unknown
        """
        index = self._index_of(notification_id)
        del self.notifications[index]

        if not self.notifications:
            seeded = NotificationRecord(id=_new_id())
            self.notifications.append(seeded)
            self.selected_notification_id = seeded.id
            logger.debug(f"Stack emptied, seeded default notification {seeded.id}")
            return

        if self.selected_notification_id == notification_id:
            self.selected_notification_id = self.notifications[0].id

    def reorder_notification(self, notification_id: str, new_index: int) -> None:
        """Move a notification to a new position (clamped to the stack)"""
        index = self._index_of(notification_id)
        record = self.notifications.pop(index)
        new_index = _clamp(new_index, 0, len(self.notifications))
        self.notifications.insert(new_index, record)

    def select_notification(self, notification_id: str) -> None:
        self._index_of(notification_id)
        self.selected_notification_id = notification_id

    # ----------------------------------
    # Field edits
    # ----------------------------------

    def apply_update(self, notification_id: str, update: FieldUpdate) -> None:
        """Apply an already validated typed update"""
        update.apply(self.get_notification(notification_id))

    def update_field(self, notification_id: str, field_name: Any, value: Any) -> None:
        """
        Validate and apply a single field edit

        Raises:
            NotificationNotFoundError: If the id is unknown
            InvalidFieldError: If the value is rejected (record unchanged)
        """
        record = self.get_notification(notification_id)
        make_update(field_name, value).apply(record)

    def set_skin(self, skin_id: str) -> None:
        """
        Raises:
            ValueError: If the skin id is not in the catalog
        """
        self.skin = get_skin(skin_id)

    def set_wallpaper(self, reference: WallpaperReference) -> None:
        self.wallpaper = reference

    def set_status_bar(self, **changes) -> None:
        """Update some status bar settings (values are clamped)"""
        self.status_bar = self.status_bar.updated(**changes)

    # ----------------------------------
    # Presets
    # ----------------------------------

    def make_preset(self, name: str, notification_id: Optional[str] = None) -> Preset:
        """
        Capture the app/transaction fields of a record as a preset

        Raises:
            InvalidFieldError: If the name is blank
        """
        if not name or not name.strip():
            raise InvalidFieldError("Preset name must not be empty")

        record = (
            self.get_notification(notification_id)
            if notification_id else self.selected_notification or self.notifications[0]
        )
        return Preset(
            id=_new_id(),
            name=name.strip(),
            app=record.app,
            custom_app_name=record.custom_app_name,
            custom_icon=record.custom_icon,
            transaction_kind=record.transaction_kind,
        )

    def apply_preset(self, preset: Preset, notification_id: Optional[str] = None) -> None:
        """Bulk-apply a preset to a record (default: the selected one)"""
        target_id = notification_id or self.selected_notification_id or self.notifications[0].id
        record = self.get_notification(target_id)
        for update in preset.updates():
            update.apply(record)

    # ----------------------------------
    # Snapshots and serialization
    # ----------------------------------

    def snapshot(self) -> CompositionSnapshot:
        """Deep, read-only copy for rendering and export"""
        return CompositionSnapshot(
            skin=self.skin,
            status_bar=copy.deepcopy(self.status_bar),
            wallpaper=self.wallpaper,
            notifications=tuple(copy.deepcopy(record) for record in self.notifications),
            selected_notification_id=self.selected_notification_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'skin': self.skin.id,
            'status_bar': self.status_bar.to_dict(),
            'wallpaper': self.wallpaper.to_uri(),
            'notifications': [record.to_dict() for record in self.notifications],
            'selected_notification_id': self.selected_notification_id,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        wallpaper: Optional[WallpaperReference] = None
    ) -> 'CompositionState':
        """
        Rebuild a composition from a plain fragment

        Missing sections fall back to defaults. Skins may be given by id or
        by display name.

        Args:
            data: Fragment shaped like to_dict()
            wallpaper: Already parsed wallpaper (overrides data['wallpaper'])

        Raises:
            InvalidFieldError: If a field is invalid
            ValueError: If the skin is unknown
        """
        state = cls.create_default()

        skin_value = data.get('skin')
        if skin_value:
            by_name = find_skin_by_name(skin_value)
            state.skin = by_name or get_skin(skin_value)

        if data.get('status_bar'):
            state.status_bar = StatusBarSettings().updated(**dict(data['status_bar']))

        if wallpaper is not None:
            state.wallpaper = wallpaper
        elif data.get('wallpaper'):
            try:
                state.wallpaper = wallpaper_from_string(data['wallpaper'])
            except WallpaperReferenceError as e:
                raise InvalidFieldError(str(e))

        fragments = data.get('notifications') or []
        if fragments:
            records = []
            seen = set()
            for fragment in fragments:
                record_id = fragment.get('id') or _new_id()
                # Keep ids unique even if the fragment repeats one
                if record_id in seen:
                    record_id = _new_id()
                seen.add(record_id)

                record = NotificationRecord(id=record_id)
                for name, value in fragment.items():
                    if name == 'id':
                        continue
                    make_update(name, value).apply(record)
                records.append(record)
            state.notifications = records
            state.selected_notification_id = records[0].id

        selected = data.get('selected_notification_id')
        if selected and any(r.id == selected for r in state.notifications):
            state.selected_notification_id = selected

        return state
