"""Sub-category policy catalog.

Maps ``(high_level_category, sub_category)`` to the approval chain a new
ticket receives and the specialist queue that will work it.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from helpdesk.services.helpdesk.errors import ValidationError
from helpdesk.services.helpdesk.schemas import ApprovalStep, HighLevelCategory

logger = logging.getLogger(__name__)


class ApproverConfig(BaseModel):
    """Approver configured for one level."""

    level: int = Field(..., ge=1, le=3, description="Approval level")
    manager_id: str | None = Field(
        None, description="Specific approver (None = any manager at this level)"
    )
    manager_name: str | None = Field(None, description="Approver display name")


class SubCategoryPolicy(BaseModel):
    """Routing and approval policy for a sub-category."""

    high_level_category: HighLevelCategory = Field(..., description="Category")
    sub_category: str = Field(..., description="Sub-category name")
    specialist_queue: str = Field(..., description="Queue that works the ticket")
    approvers: list[ApproverConfig] = Field(
        default_factory=list, description="Approval levels, empty = no approval"
    )

    @field_validator("approvers")
    @classmethod
    def levels_are_contiguous(cls, value: list[ApproverConfig]) -> list[ApproverConfig]:
        levels = sorted(a.level for a in value)
        if levels != list(range(1, len(levels) + 1)):
            raise ValueError(f"Approval levels must be contiguous from 1, got {levels}")
        return sorted(value, key=lambda a: a.level)

    @property
    def requires_approval(self) -> bool:
        return bool(self.approvers)

    def build_approval_flow(
        self, requester_manager_id: str | None = None
    ) -> list[ApprovalStep]:
        """Create a fresh pending approval chain.

        @param requester_manager_id - Reporting manager; becomes the L1 approver
            when the policy does not name one
        @returns Ordered approval steps
        """
        flow = []
        for approver in self.approvers:
            manager_id = approver.manager_id
            if approver.level == 1 and manager_id is None:
                manager_id = requester_manager_id
            flow.append(
                ApprovalStep(
                    level=approver.level,
                    manager_id=manager_id,
                    manager_name=approver.manager_name,
                )
            )
        return flow


def _policy(
    category: HighLevelCategory,
    sub_category: str,
    queue: str,
    levels: int = 0,
) -> SubCategoryPolicy:
    return SubCategoryPolicy(
        high_level_category=category,
        sub_category=sub_category,
        specialist_queue=queue,
        approvers=[ApproverConfig(level=n) for n in range(1, levels + 1)],
    )


IT = HighLevelCategory.IT
FACILITIES = HighLevelCategory.FACILITIES
FINANCE = HighLevelCategory.FINANCE

DEFAULT_POLICIES: list[SubCategoryPolicy] = [
    _policy(IT, "Hardware", "Hardware Team", levels=1),
    _policy(IT, "Software", "Software Team", levels=2),
    _policy(IT, "Network / Connectivity", "Network Team"),
    _policy(IT, "Account / Login Problem", "Identity Team"),
    _policy(IT, "Access Request", "Security Team", levels=3),
    _policy(IT, "New Equipment Request", "Hardware Team", levels=2),
    _policy(IT, "Other", "General IT Support"),
    _policy(FACILITIES, "Maintenance Request", "Building Maintenance"),
    _policy(FACILITIES, "Repair Request", "Building Maintenance"),
    _policy(FACILITIES, "Cleaning", "Housekeeping"),
    _policy(FACILITIES, "Electrical Issue", "Electrical Team"),
    _policy(FACILITIES, "AC Temperature Issue", "HVAC Team"),
    _policy(FACILITIES, "Plumbing", "Plumbing Team"),
    _policy(FACILITIES, "Furniture", "Furniture & Layout"),
    _policy(FINANCE, "Payroll Question", "Payroll Team"),
    _policy(FINANCE, "Expense Reimbursement Issue", "Expense Claims"),
    _policy(FINANCE, "Invoice / Payment Issue", "Invoice Processing"),
    _policy(FINANCE, "Purchase Order Request", "Procurement Team"),
    _policy(FINANCE, "Vendor Setup or Update", "Vendor Management"),
    _policy(FINANCE, "Budget or Account Inquiry", "Accounts Team"),
]


class PolicyCatalog:
    """Lookup table of sub-category policies."""

    def __init__(self, policies: list[SubCategoryPolicy] | None = None):
        """Initialize catalog.

        @param policies - Policies to serve (uses defaults if None)
        """
        self._policies: dict[tuple[HighLevelCategory, str], SubCategoryPolicy] = {}
        for policy in policies if policies is not None else DEFAULT_POLICIES:
            self.register(policy)

    @classmethod
    def from_file(cls, path: str | Path) -> "PolicyCatalog":
        """Load a catalog from a JSON list of policies.

        @param path - JSON file path
        @returns Catalog holding exactly the file's policies
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        policies = [SubCategoryPolicy.model_validate(item) for item in raw]
        logger.info(f"Loaded {len(policies)} sub-category policies from {path}")
        return cls(policies)

    def register(self, policy: SubCategoryPolicy) -> None:
        self._policies[(policy.high_level_category, policy.sub_category)] = policy

    def get(self, category: HighLevelCategory, sub_category: str) -> SubCategoryPolicy:
        """Get policy for a sub-category.

        @raises ValidationError if the sub-category is unknown
        """
        policy = self._policies.get((category, sub_category))
        if policy is None:
            raise ValidationError(
                f"unknown sub-category '{sub_category}' for {category.value}"
            )
        return policy

    def policies(
        self, category: HighLevelCategory | None = None
    ) -> list[SubCategoryPolicy]:
        return [
            p
            for p in self._policies.values()
            if category is None or p.high_level_category == category
        ]
