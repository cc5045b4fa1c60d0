import dataclasses
import enum
from dataclasses import dataclass
from typing import Iterable

from .pci_ids import PciIdsDatabase, get_database, normalize_id
import tpm_attest.logging as logging

logger = logging.getLogger('component_identifier')

# The Component Class TCG Registry OID.
COMPCLASS_TCG_OID = "2.23.133.18.3.1"
# Component Class Value masks for NICs and GFX cards.
COMPCLASS_TCG_CAT_NIC = "00090000"
COMPCLASS_TCG_CAT_GFX = "00050000"

PCI_CATEGORIES = frozenset({COMPCLASS_TCG_CAT_NIC, COMPCLASS_TCG_CAT_GFX})


class ComponentVersion(enum.IntEnum):
    V1 = 1
    V2 = 2


@dataclass(frozen=True)
class ComponentClass:
    registry: str
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValueError(f"component class value must be a hex string, got {self.value!r}")

    @property
    def category(self) -> str:
        # the upper 16 bits of the class value select the category
        value = self.value.strip().lower()
        if len(value) != 8:
            return value
        return value[:4] + "0000"


@dataclass(frozen=True)
class ComponentAddress:
    address_type: str
    value: str


_V2_ONLY_FIELDS = ("component_class", "certificate_identifier", "platform_uri", "attribute_status")


@dataclass(frozen=True)
class ComponentIdentifier:
    """
    One hardware component listed by a platform certificate.

    `version` tells the two shapes apart: V1 identifiers carry no class or
    status information, V2 identifiers always have a component class. Use
    the v1() / v2() constructors.
    """
    version: ComponentVersion
    manufacturer: str | None
    model: str | None
    serial: str | None = None
    revision: str | None = None
    manufacturer_id: str | None = None
    field_replaceable: bool | None = None
    addresses: tuple[ComponentAddress, ...] = ()
    component_class: ComponentClass | None = None
    certificate_identifier: str | None = None
    platform_uri: str | None = None
    attribute_status: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "addresses", tuple(self.addresses))
        if self.version == ComponentVersion.V2 and self.component_class is None:
            raise ValueError("V2 component identifiers require a component class")
        if self.version == ComponentVersion.V1:
            present = [name for name in _V2_ONLY_FIELDS if getattr(self, name) is not None]
            if present:
                raise ValueError(f"V1 component identifiers cannot carry {', '.join(present)}")

    @classmethod
    def v1(cls, manufacturer, model, **kwargs) -> 'ComponentIdentifier':
        return cls(ComponentVersion.V1, manufacturer, model, **kwargs)

    @classmethod
    def v2(cls, component_class: ComponentClass, manufacturer, model, **kwargs) -> 'ComponentIdentifier':
        return cls(ComponentVersion.V2, manufacturer, model, component_class=component_class, **kwargs)

    @classmethod
    def from_json(cls, obj: dict) -> 'ComponentIdentifier':
        component_class = obj.get("componentClass")
        version = ComponentVersion(obj.get("version", 2 if component_class else 1))
        return cls(
            version,
            obj.get("manufacturer"),
            obj.get("model"),
            serial=obj.get("serial"),
            revision=obj.get("revision"),
            manufacturer_id=obj.get("manufacturerId"),
            field_replaceable=obj.get("fieldReplaceable"),
            addresses=tuple(ComponentAddress(a["type"], a["value"]) for a in obj.get("addresses", ())),
            component_class=ComponentClass(component_class["registry"], component_class["value"])
            if component_class else None,
            certificate_identifier=obj.get("certificateIdentifier"),
            platform_uri=obj.get("platformUri"),
            attribute_status=obj.get("attributeStatus"),
        )

    def to_json(self) -> dict:
        obj = {
            "version": int(self.version),
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serial": self.serial,
            "revision": self.revision,
            "manufacturerId": self.manufacturer_id,
            "fieldReplaceable": self.field_replaceable,
            "addresses": [{"type": a.address_type, "value": a.value} for a in self.addresses],
        }
        if self.version == ComponentVersion.V2:
            obj.update({
                "componentClass": {"registry": self.component_class.registry,
                                   "value": self.component_class.value},
                "certificateIdentifier": self.certificate_identifier,
                "platformUri": self.platform_uri,
                "attributeStatus": self.attribute_status,
            })
        return obj


def translate_vendor(manufacturer: str | None, db: PciIdsDatabase | None = None) -> str | None:
    """
    Look up the vendor name if the manufacturer is a 4 hex digit PCI id.
    Anything else, or an id the database doesn't know, is returned as is.
    """
    if normalize_id(manufacturer) is None:
        return manufacturer
    db = get_database() if db is None else db
    vendor = db.find_vendor(manufacturer)
    if vendor is not None and vendor.name:
        return vendor.name
    return manufacturer


def translate_device(manufacturer: str | None, model: str | None,
                     db: PciIdsDatabase | None = None) -> str | None:
    """
    Look up the device name if both manufacturer and model are PCI ids;
    the device can only be found under its vendor. Returns the original
    model otherwise.
    """
    if normalize_id(manufacturer) is None or normalize_id(model) is None:
        return model
    db = get_database() if db is None else db
    device = db.find_device(manufacturer, model)
    if device is not None and device.name:
        return device.name
    return model


def translate_component(component: ComponentIdentifier,
                        db: PciIdsDatabase | None = None) -> ComponentIdentifier:
    # V1 identifiers have no component class to go by
    if component.version != ComponentVersion.V2:
        return component

    # Component Class Registry not checked: TCG assumed
    if component.component_class.category not in PCI_CATEGORIES:
        return component

    # the device is looked up with the original vendor id, not the translated name
    manufacturer = translate_vendor(component.manufacturer, db)
    model = translate_device(component.manufacturer, component.model, db)
    if manufacturer == component.manufacturer and model == component.model:
        return component

    logger.verbose("translated component %s/%s to %s/%s", component.manufacturer, component.model,
                   manufacturer, model)
    return dataclasses.replace(component, manufacturer=manufacturer, model=model)


def translate(components: Iterable[ComponentIdentifier] | None,
              db: PciIdsDatabase | None = None) -> list[ComponentIdentifier]:
    """Translate PCI hardware ids in NIC and GFX components, keeping order and length."""
    if not components:
        return []
    db = get_database() if db is None else db
    return [translate_component(component, db) for component in components]
