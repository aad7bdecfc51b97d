"""
Form State - Wizard data, section validity and stage navigation.

Holds the member, nominee, address, bank and signature data for one form
session. Every mutation is published to subscribers as a FormChange so
the auto-save pipeline can observe it.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from config.form_schema import (
    Address,
    BankAccount,
    DigitalSignature,
    DraftSnapshot,
    FormSection,
    Person,
    WizardStage,
)
from backend.form_validator import (
    age_validation_message,
    validate_address,
    validate_bank_account,
    validate_person,
)
from backend.security import decode_signature_image, validate_signature_image

logger = logging.getLogger(__name__)


SECTION_MODELS = {
    FormSection.MEMBER: Person,
    FormSection.MEMBER_ADDRESS: Address,
    FormSection.NOMINEE: Person,
    FormSection.NOMINEE_ADDRESS: Address,
    FormSection.ACCOUNT: BankAccount,
    FormSection.DIGITAL_SIGNATURE: DigitalSignature,
}


@dataclass
class FormChange:
    """A mutation of form data or of the current stage."""
    section: Optional[FormSection] = None
    field: Optional[str] = None
    stage: Optional[WizardStage] = None


FormListener = Callable[[FormChange], None]


def _merge(base: Dict[str, Any], changes: Mapping[str, Any], path: str = "") -> Dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if key not in base:
            raise KeyError(f"Unknown field: {path}{key}")
        if isinstance(value, Mapping) and isinstance(base[key], dict):
            merged[key] = _merge(base[key], value, f"{path}{key}.")
        else:
            merged[key] = value
    return merged


def _overlay(current: BaseModel, incoming: BaseModel) -> BaseModel:
    """Copy fields explicitly present and non-empty in incoming onto current."""
    updates = {}
    for name in incoming.model_fields_set:
        value = getattr(incoming, name)
        if value is None or value == "":
            continue
        existing = getattr(current, name)
        if isinstance(value, BaseModel) and isinstance(existing, BaseModel):
            value = _overlay(existing, value)
        updates[name] = value
    return current.model_copy(update=updates)


class KYCFormState:
    """
    Form data plus the wizard state machine.

    Stages form a cycle: next() from SUMMARY returns to MEMBER_INFO and
    previous() from MEMBER_INFO goes to SUMMARY. Moving forward requires
    the current stage's section to be valid; moving back never does.
    """

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self._listeners: List[FormListener] = []
        self._init_data()

    def _init_data(self) -> None:
        self.member = Person()
        self.member_address = Address()
        self.nominee = Person()
        self.nominee_address = Address()
        self.account = BankAccount()
        self.digital_signature = DigitalSignature()
        self.current_stage = WizardStage.MEMBER_INFO

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: FormListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: FormChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def get_section(self, section: Union[FormSection, str]) -> BaseModel:
        return getattr(self, FormSection(section).value)

    def replace_section(self, section: Union[FormSection, str], model: BaseModel) -> None:
        section = FormSection(section)
        model_cls = SECTION_MODELS[section]
        if not isinstance(model, model_cls):
            raise TypeError(f"{section.value} expects {model_cls.__name__}, got {type(model).__name__}")
        setattr(self, section.value, model.model_copy(deep=True))
        self._emit(FormChange(section=section))

    def update_section(
        self,
        section: Union[FormSection, str],
        data: Union[BaseModel, Mapping[str, Any]]
    ) -> BaseModel:
        """
        Merge field values into a section.

        Nested mappings are merged field by field. Raises KeyError for
        unknown fields and pydantic.ValidationError for bad values; the
        section is left unchanged in both cases.
        """
        section = FormSection(section)
        current = self.get_section(section)
        changes = data.model_dump() if isinstance(data, BaseModel) else data

        updated = type(current).model_validate(_merge(current.model_dump(), changes))
        setattr(self, section.value, updated)
        self._emit(FormChange(section=section, field=",".join(changes) or None))
        return updated

    def update_field(self, section: Union[FormSection, str], field_path: str, value: Any) -> BaseModel:
        """Set one field by dotted path, e.g. update_field("member", "name.first", "Ada")."""
        changes: Any = value
        for part in reversed(field_path.split(".")):
            changes = {part: changes}
        return self.update_section(section, changes)

    def reset(self) -> None:
        """Return to empty data on the first stage. Does not notify listeners."""
        self._init_data()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def section_result(self, stage: WizardStage) -> Tuple[bool, List[str], Dict[str, str]]:
        """Validation result for the data behind a stage."""
        today = self._today()
        if stage == WizardStage.MEMBER_INFO:
            return validate_person(self.member, "Member", today)
        if stage == WizardStage.MEMBER_ADDRESS:
            return validate_address(self.member_address, "Member")
        if stage == WizardStage.NOMINEE_INFO:
            return validate_person(self.nominee, "Nominee", today)
        if stage == WizardStage.NOMINEE_ADDRESS:
            return validate_address(self.nominee_address, "Nominee")
        if stage == WizardStage.BANK_DETAILS:
            return validate_bank_account(self.account)
        return True, [], {}

    @property
    def is_member_info_valid(self) -> bool:
        return self.section_result(WizardStage.MEMBER_INFO)[0]

    @property
    def is_member_address_valid(self) -> bool:
        return self.section_result(WizardStage.MEMBER_ADDRESS)[0]

    @property
    def is_nominee_info_valid(self) -> bool:
        return self.section_result(WizardStage.NOMINEE_INFO)[0]

    @property
    def is_nominee_address_valid(self) -> bool:
        return self.section_result(WizardStage.NOMINEE_ADDRESS)[0]

    @property
    def is_account_valid(self) -> bool:
        return self.section_result(WizardStage.BANK_DETAILS)[0]

    @property
    def is_signature_valid(self) -> bool:
        """Signature captured and decodable. Informational, does not gate navigation."""
        if not self.digital_signature.is_complete:
            return False
        is_valid, _ = validate_signature_image(decode_signature_image(self.digital_signature.image_data))
        return is_valid

    def section_validity(self) -> Dict[WizardStage, bool]:
        return {stage: self.section_result(stage)[0] for stage in WizardStage}

    def section_errors(self, stage: WizardStage) -> Dict[str, str]:
        return self.section_result(stage)[2]

    def age_messages(self) -> Dict[str, Optional[str]]:
        today = self._today()
        return {
            "member": age_validation_message(self.member.birth_date, "Member", today),
            "nominee": age_validation_message(self.nominee.birth_date, "Nominee", today),
        }

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def can_proceed(self, stage: Optional[WizardStage] = None) -> bool:
        stage = stage or self.current_stage
        can_proceed = self.section_result(stage)[0]
        logger.debug(f"[Form] can_proceed {stage.value}: {can_proceed}")
        return can_proceed

    def next(self) -> bool:
        """Advance one stage if the current stage is valid. Returns whether it moved."""
        if not self.can_proceed():
            return False
        self.current_stage = self.current_stage.next_stage()
        self._emit(FormChange(stage=self.current_stage))
        return True

    def previous(self) -> WizardStage:
        """Go back one stage unconditionally."""
        self.current_stage = self.current_stage.previous_stage()
        self._emit(FormChange(stage=self.current_stage))
        return self.current_stage

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def snapshot(self, last_updated: Optional[datetime] = None) -> DraftSnapshot:
        return DraftSnapshot(
            member=self.member.model_copy(deep=True),
            member_address=self.member_address.model_copy(deep=True),
            nominee=self.nominee.model_copy(deep=True),
            nominee_address=self.nominee_address.model_copy(deep=True),
            account=self.account.model_copy(deep=True),
            digital_signature=self.digital_signature.model_copy(deep=True),
            last_updated=last_updated,
        )

    def restore(self, snapshot: DraftSnapshot) -> None:
        """Overlay the non-empty parts of a draft. Does not notify listeners."""
        for section in FormSection:
            incoming = getattr(snapshot, section.value)
            if incoming is None:
                continue
            setattr(self, section.value, _overlay(self.get_section(section), incoming))
