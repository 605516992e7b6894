"""
Deposit-opening wizard: step validators, derivation rules and the step table.

Flow: deposit type -> applicant info -> deposit details -> nominees -> bank -> payment & terms -> review
"""
import re
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping

from appwiz.settings import settings
from appwiz.core.files import check_document, check_image
from appwiz.core.products import (
    DEPOSIT_CATEGORIES,
    EARN_FAST,
    EARN_FAST_AMOUNT,
    EARN_FAST_TERMS,
    FIXED_TERM_PRODUCTS,
    MONTHLY_SCHEME,
    MONTHLY_SCHEME_AMOUNTS,
    MONTHLY_SCHEME_TERMS,
    earn_fast_installment,
    maturity_value,
    rate_for_term,
)
from appwiz.core.registry import REVIEW, Derivation, StepContext, StepDefinition, WizardDefinition
from appwiz.core.validation import (
    ValidationResult,
    add_error,
    as_int,
    as_number,
    check_accepted,
    check_choice,
    check_email,
    check_int_range,
    check_positive,
    check_text,
    is_blank,
)

DEPOSIT_TYPE = "deposit_type"
APPLICANT_INFO = "applicant_info"
DEPOSIT_DETAILS = "deposit_details"
NOMINEE_DETAILS = "nominee_details"
BANK_DETAILS = "bank_details"
PAYMENT_TERMS = "payment_terms"

ACCOUNT_NO_RE = re.compile(r"^[0-9-]{6,20}$")

ALL_DEPOSIT_TYPES = tuple(t for types in DEPOSIT_CATEGORIES.values() for t in types)


def selected_deposit_type(ctx: StepContext):
    return ctx.values(DEPOSIT_TYPE).get("depositType")


# --- Step 0: deposit type ---

def validate_deposit_type(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    category = check_choice(errors, values, "depositCategory", DEPOSIT_CATEGORIES, "Please select a deposit category")
    allowed = DEPOSIT_CATEGORIES.get(category, ALL_DEPOSIT_TYPES) if category else ALL_DEPOSIT_TYPES
    check_choice(errors, values, "depositType", allowed, "Please select a deposit type")
    return ValidationResult.from_errors(errors)


# --- Step 1: applicant info ---

def validate_applicant_info(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_text(errors, values, "accountName", "Name", min_len=2, max_len=80)
    check_email(errors, values)
    check_text(errors, values, "mailingAddress", "Address", min_len=5, max_len=200)
    check_document(errors, values, "nidDoc", "NID document")
    check_image(errors, values, "photo", "Photo")
    check_document(errors, values, "signature", "Signature")
    check_document(errors, values, "tin", "TIN certificate", optional=True)
    return ValidationResult.from_errors(errors)


# --- Step 2: deposit details ---

def validate_deposit_details(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    amount = check_positive(errors, values, "depositAmount", "Deposit amount")
    term = as_int(values.get("depositTerm"))
    if values.get("depositTerm") is None:
        add_error(errors, "depositTerm", "Deposit term is required")
    elif term is None or term <= 0:
        add_error(errors, "depositTerm", "Deposit term must be a positive integer")
        term = None
    if values.get("monthlyInstallment") is not None and as_number(values.get("monthlyInstallment")) is None:
        add_error(errors, "monthlyInstallment", "Monthly installment must be a number")
    check_text(errors, values, "occupation", "Occupation", min_len=2)

    deposit_type = selected_deposit_type(ctx)
    if deposit_type == MONTHLY_SCHEME:
        if amount is not None and amount not in MONTHLY_SCHEME_AMOUNTS:
            add_error(errors, "depositAmount", "Select one of the available deposit amounts")
        if term is not None and term not in MONTHLY_SCHEME_TERMS:
            add_error(errors, "depositTerm", "Select one of the available deposit terms")
    elif deposit_type == EARN_FAST:
        if term is not None and term not in EARN_FAST_TERMS:
            add_error(errors, "depositTerm", "Select one of the available deposit terms")
    return ValidationResult.from_errors(errors)


def derive_deposit_details(values: Mapping[str, Any], ctx: StepContext) -> Derivation:
    deposit_type = selected_deposit_type(ctx)
    updates: Dict[str, Any] = {}
    read_only = ()

    if deposit_type in FIXED_TERM_PRODUCTS:
        amount, term = FIXED_TERM_PRODUCTS[deposit_type]
        updates.update(depositAmount=amount, depositTerm=term, monthlyInstallment=None)
        read_only = ("depositAmount", "depositTerm")
    elif deposit_type == EARN_FAST:
        updates["depositAmount"] = EARN_FAST_AMOUNT
        term = as_int(values.get("depositTerm"))
        updates["monthlyInstallment"] = earn_fast_installment(term) if term else None
        read_only = ("depositAmount", "monthlyInstallment")
    else:
        updates["monthlyInstallment"] = None

    amount = as_number(updates.get("depositAmount", values.get("depositAmount")))
    term = as_int(updates.get("depositTerm", values.get("depositTerm")))
    rate = rate_for_term(ctx.interest_rates, term) if term else None
    if rate is not None and amount:
        updates["interestRate"] = rate
        updates["maturityValue"] = maturity_value(amount, term, rate)
    else:
        updates["interestRate"] = None
        updates["maturityValue"] = None

    return Derivation(updates=MappingProxyType(updates), read_only=read_only)


# --- Step 3: nominees ---

def validate_nominee_details(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    nominees = values.get("nominees")
    if not isinstance(nominees, list) or not nominees:
        add_error(errors, "nominees", "At least one nominee is required")
        return ValidationResult.from_errors(errors)

    total = Decimal(0)
    for i, nominee in enumerate(nominees):
        p = f"nominees.{i}"
        if not isinstance(nominee, Mapping):
            add_error(errors, p, "Invalid nominee")
            continue
        check_text(errors, nominee, "name", "Name", min_len=2, max_len=60, path=f"{p}.name")
        check_text(errors, nominee, "relation", "Relation", min_len=2, max_len=40, path=f"{p}.relation")
        check_document(errors, nominee, "idDoc", "ID document", path=f"{p}.idDoc")
        check_image(errors, nominee, "photo", "Photo", path=f"{p}.photo")
        check_document(errors, nominee, "signature", "Signature", path=f"{p}.signature")

        raw_pct = nominee.get("percentage")
        pct = as_number(raw_pct)
        if pct is None:
            add_error(errors, f"{p}.percentage", "Percentage is required" if raw_pct is None else "Percentage must be a number")
            continue
        if pct < 0:
            add_error(errors, f"{p}.percentage", "Percentage must be at least 0")
        elif pct > 100:
            add_error(errors, f"{p}.percentage", "Percentage must be at most 100")
        total += Decimal(str(pct))

    # Group rule, independent of the per-nominee checks above
    tolerance = Decimal(str(settings.NOMINEE_PERCENT_TOLERANCE))
    if abs(total - Decimal(100)) >= tolerance:
        errors["nominees"] = "Total nominee percentages must equal 100%"
    return ValidationResult.from_errors(errors)


# --- Step 4: bank details ---

def validate_bank_details(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_text(errors, values, "bankAccountName", "Account name", min_len=2, max_len=80)

    account_no = values.get("accountNo")
    if is_blank(account_no):
        add_error(errors, "accountNo", "Account number is required")
    elif not isinstance(account_no, str) or not ACCOUNT_NO_RE.match(account_no):
        add_error(errors, "accountNo", "Account number must be 6-20 characters with only digits and hyphens")

    check_text(errors, values, "bankName", "Bank name", min_len=2, max_len=80, optional=True)
    check_text(errors, values, "branchName", "Branch name", min_len=2, max_len=80)

    auto = values.get("autoPayment", False)
    if not isinstance(auto, bool):
        add_error(errors, "autoPayment", "Auto payment must be on or off")
    elif auto:
        # Conditional requirement: the day only matters when auto payment is on
        if values.get("autoPaymentDay") is None:
            add_error(errors, "autoPaymentDay", "Auto payment day is required when auto payment is enabled")
        else:
            check_int_range(errors, values, "autoPaymentDay", "Auto payment day", lo=1, hi=28)
    return ValidationResult.from_errors(errors)


def derive_bank_details(values: Mapping[str, Any], ctx: StepContext) -> Derivation:
    auto = values.get("autoPayment") is True
    updates = {"autoPayment": auto}
    if not auto:
        updates["autoPaymentDay"] = None
    return Derivation(updates=MappingProxyType(updates))


# --- Step 5: payment & terms ---

def validate_payment_terms(values: Mapping[str, Any], ctx: StepContext) -> ValidationResult:
    errors: Dict[str, str] = {}
    check_accepted(errors, values, "termsAccepted", "You must accept the terms and conditions")
    check_text(errors, values, "trxId", "Transaction ID", min_len=6, max_len=40, optional=True)
    check_document(errors, values, "trxScreenshot", "Transaction screenshot", optional=True)
    if values.get("trxScreenshot") and is_blank(values.get("trxId")):
        add_error(errors, "trxId", "Transaction ID is required when transaction screenshot is provided")
    return ValidationResult.from_errors(errors)


DEPOSIT_WIZARD = WizardDefinition(
    name="deposit",
    draft_key_setting="DEPOSIT_DRAFT_KEY",
    steps=[
        StepDefinition(DEPOSIT_TYPE, "Deposit Type", "depositType", validate_deposit_type),
        StepDefinition(APPLICANT_INFO, "Applicant Info", "applicantInfo", validate_applicant_info),
        StepDefinition(
            DEPOSIT_DETAILS, "Deposit Details", "depositDetails", validate_deposit_details,
            deriver=derive_deposit_details, depends_on=(DEPOSIT_TYPE,),
        ),
        StepDefinition(NOMINEE_DETAILS, "Nominee Details", "nomineeDetails", validate_nominee_details),
        StepDefinition(
            BANK_DETAILS, "Bank Details", "bankDetails", validate_bank_details,
            deriver=derive_bank_details,
        ),
        StepDefinition(PAYMENT_TERMS, "Payment & Terms", "paymentTerms", validate_payment_terms),
    ],
    transitions={
        DEPOSIT_TYPE: APPLICANT_INFO,
        APPLICANT_INFO: DEPOSIT_DETAILS,
        DEPOSIT_DETAILS: NOMINEE_DETAILS,
        NOMINEE_DETAILS: BANK_DETAILS,
        BANK_DETAILS: PAYMENT_TERMS,
        PAYMENT_TERMS: REVIEW,
    },
    reference_data=("interest_rates",),
)
