import pytest

from appwiz.core.loan_steps import LOAN_WIZARD

from conftest import file_desc, png


@pytest.mark.parametrize("loan_type,field", [("Home", "homeLoanSubType"), ("Auto", "autoLoanSubType")])
def test_sub_type_required_only_for_matching_loan_type(loan_type, field):
    res = LOAN_WIZARD.validate("choose_product", {"loanType": loan_type})
    assert set(res.field_errors) == {field}
    assert LOAN_WIZARD.validate("choose_product", {"loanType": loan_type, field: "Purchase"}).valid


def test_personal_loan_needs_no_sub_type():
    assert LOAN_WIZARD.validate("choose_product", {"loanType": "Personal"}).valid


def test_unknown_loan_type():
    res = LOAN_WIZARD.validate("choose_product", {"loanType": "Boat"})
    assert res.field_errors == {"loanType": "Please select a loan type"}


@pytest.mark.parametrize("tenor,ok", [(6, True), (84, True), (5, False), (85, False), (12.5, False)])
def test_tenor_bounds(tenor, ok):
    res = LOAN_WIZARD.validate("loan_details", {"requestedAmount": 100000, "tenor": tenor})
    assert res.valid is ok


def test_requested_amount_must_be_positive():
    res = LOAN_WIZARD.validate("loan_details", {"requestedAmount": 0, "tenor": 12})
    assert res.field_errors == {"requestedAmount": "Requested amount must be greater than 0"}


def test_employment_address_minimum(loan_steps):
    values = dict(loan_steps["employment_income"], address="Dha")
    res = LOAN_WIZARD.validate("employment_income", values)
    assert res.field_errors == {"address": "Address must be at least 5 characters"}


def test_required_documents_aggregate_error(loan_steps):
    values = dict(loan_steps["upload_documents"])
    del values["incomeProof"]
    res = LOAN_WIZARD.validate("upload_documents", values)
    assert res.field_errors == {"required": "NID/Passport, Recent Photo, and Income Proof are required"}


def test_optional_documents_are_still_checked(loan_steps):
    values = dict(loan_steps["upload_documents"], utilityBill=file_desc(name="bill.docx", mime="application/msword"))
    res = LOAN_WIZARD.validate("upload_documents", values)
    assert res.field_errors == {"utilityBill": "File must be PNG, JPEG, JPG, WebP, or PDF format"}


def test_recent_photo_must_be_an_image(loan_steps):
    values = dict(loan_steps["upload_documents"], recentPhoto=file_desc(name="me.pdf"))
    res = LOAN_WIZARD.validate("upload_documents", values)
    assert res.field_errors == {"recentPhoto": "File must be PNG, JPEG, JPG, or WebP format"}


def test_oversized_optional_document(loan_steps):
    values = dict(loan_steps["upload_documents"], bankStatement=png(name="statement.png", size=6 * 1024 * 1024))
    res = LOAN_WIZARD.validate("upload_documents", values)
    assert res.field_errors == {"bankStatement": "File size must be less than 5MB"}


def test_declarations_must_be_accepted():
    assert not LOAN_WIZARD.validate("declarations", {"termsConditions": False}).valid
    assert LOAN_WIZARD.validate("declarations", {"termsConditions": True}).valid


def test_loan_table():
    assert LOAN_WIZARD.step_ids == [
        "choose_product", "loan_details", "employment_income", "upload_documents", "declarations",
    ]
    assert LOAN_WIZARD.reference_data == ("loan_products",)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_requested_amount_is_a_field_error(bad):
    res = LOAN_WIZARD.validate("loan_details", {"requestedAmount": bad, "tenor": 12})
    assert res.field_errors == {"requestedAmount": "Requested amount must be a number"}
