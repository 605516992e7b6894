"""
Loan application wizard.

Flow: choose product -> loan details -> employment & income -> documents -> declarations -> review
"""
from types import MappingProxyType
from typing import Any, Dict, Mapping

from appwiz.core.files import IMAGE_EXTS, check_document, check_file
from appwiz.core.products import LOAN_TENOR_MAX, LOAN_TENOR_MIN, LOAN_TYPES, emi, loan_product_for
from appwiz.core.registry import REVIEW, Derivation, StepContext, StepDefinition, WizardDefinition
from appwiz.core.validation import (
    ValidationResult,
    add_error,
    as_int,
    as_number,
    check_accepted,
    check_choice,
    check_int_range,
    check_positive,
    check_text,
)

CHOOSE_PRODUCT = "choose_product"
LOAN_DETAILS = "loan_details"
EMPLOYMENT_INCOME = "employment_income"
UPLOAD_DOCUMENTS = "upload_documents"
DECLARATIONS = "declarations"

# (field, label); all optional individually
LOAN_DOCUMENTS = (
    ("nidPassport", "NID / Passport"),
    ("recentPhoto", "Recent photo"),
    ("incomeProof", "Income proof"),
    ("vehicleProforma", "Vehicle proforma invoice"),
    ("propertyPapers", "Property papers"),
    ("utilityBill", "Utility bill"),
    ("tinCertificate", "TIN certificate"),
    ("bankStatement", "Bank statement"),
)
REQUIRED_DOCUMENTS = ("nidPassport", "recentPhoto", "incomeProof")


def validate_choose_product(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    loan_type = check_choice(errors, values, "loanType", LOAN_TYPES, "Please select a loan type")
    if loan_type == "Home":
        check_text(errors, values, "homeLoanSubType", "Home loan type")
    elif loan_type == "Auto":
        check_text(errors, values, "autoLoanSubType", "Auto loan type")
    check_text(errors, values, "customerSegment", "Customer segment", optional=True)
    return ValidationResult.from_errors(errors)


def validate_loan_details(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_positive(errors, values, "requestedAmount", "Requested amount")
    check_int_range(errors, values, "tenor", "Tenor", lo=LOAN_TENOR_MIN, hi=LOAN_TENOR_MAX)
    return ValidationResult.from_errors(errors)


def derive_loan_details(values: Mapping[str, Any], ctx: StepContext) -> Derivation:
    product = loan_product_for(ctx.loan_products, ctx.values(CHOOSE_PRODUCT).get("loanType"))
    amount = as_number(values.get("requestedAmount"))
    tenor = as_int(values.get("tenor"))
    if product is None:
        return Derivation(updates=MappingProxyType({"indicativeRate": None, "emiPreview": None}))
    updates = {"indicativeRate": product.indicativeRate, "emiPreview": None}
    if amount and amount > 0 and tenor and tenor > 0:
        updates["emiPreview"] = emi(amount, product.indicativeRate, tenor)
    return Derivation(updates=MappingProxyType(updates), read_only=("indicativeRate", "emiPreview"))


def validate_employment_income(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_text(errors, values, "employmentSector", "Employment sector")
    check_positive(errors, values, "monthlyIncome", "Monthly income")
    check_text(errors, values, "employmentType", "Employment type")
    check_text(errors, values, "location", "Location")
    check_text(errors, values, "address", "Address", min_len=5)
    return ValidationResult.from_errors(errors)


def validate_upload_documents(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    for key, label in LOAN_DOCUMENTS:
        if key == "recentPhoto":
            check_file(errors, values, key, IMAGE_EXTS, label, optional=True)
        else:
            check_document(errors, values, key, label, optional=True)
    if not all(values.get(k) for k in REQUIRED_DOCUMENTS):
        add_error(errors, "required", "NID/Passport, Recent Photo, and Income Proof are required")
    return ValidationResult.from_errors(errors)


def validate_declarations(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_accepted(errors, values, "termsConditions", "You must accept the terms and conditions")
    return ValidationResult.from_errors(errors)


def assemble_loan(steps: Mapping[str, dict]) -> Dict[str, Any]:
    product = steps.get(CHOOSE_PRODUCT) or {}
    return {
        "loanType": product.get("loanType"),
        "customerSegment": product.get("customerSegment"),
        # applicant is the signed-in customer; the backend fills this in
        "applicantInfo": {},
    }


LOAN_WIZARD = WizardDefinition(
    name="loan",
    draft_key_setting="LOAN_DRAFT_KEY",
    steps=[
        StepDefinition(CHOOSE_PRODUCT, "Choose Product", "product", validate_choose_product),
        StepDefinition(
            LOAN_DETAILS, "Loan Details", "loanDetails", validate_loan_details,
            deriver=derive_loan_details, depends_on=(CHOOSE_PRODUCT,),
        ),
        StepDefinition(EMPLOYMENT_INCOME, "Employment & Income", "employmentIncome", validate_employment_income),
        StepDefinition(UPLOAD_DOCUMENTS, "Upload Documents", "documents", validate_upload_documents),
        StepDefinition(DECLARATIONS, "Declarations", "declarations", validate_declarations),
    ],
    transitions={
        CHOOSE_PRODUCT: LOAN_DETAILS,
        LOAN_DETAILS: EMPLOYMENT_INCOME,
        EMPLOYMENT_INCOME: UPLOAD_DOCUMENTS,
        UPLOAD_DOCUMENTS: DECLARATIONS,
        DECLARATIONS: REVIEW,
    },
    assemble=assemble_loan,
    reference_data=("loan_products",),
)
