import copy

import pytest
from unittest.mock import patch

from appwiz.settings import settings


@pytest.fixture(autouse=True)
def no_redis_metrics():
    # Counters are best-effort Redis writes; the suite never talks to Redis.
    with patch.object(settings, "METRICS_ENABLED", False):
        yield


def file_desc(name="doc.pdf", size=1024, mime="application/pdf", uri="file:///tmp/doc.pdf"):
    return {"name": name, "size": size, "type": mime, "uri": uri}


def png(name="photo.png", size=2048):
    return file_desc(name=name, size=size, mime="image/png", uri=f"file:///tmp/{name}")


def nominee(name, percentage):
    return {
        "name": name,
        "relation": "Sibling",
        "idDoc": file_desc(name=f"{name.lower()}-nid.pdf"),
        "photo": png(name=f"{name.lower()}.png"),
        "signature": png(name=f"{name.lower()}-sig.png"),
        "percentage": percentage,
    }


DEPOSIT_STEPS = {
    "deposit_type": {"depositCategory": "money-builder", "depositType": "monthly-scheme"},
    "applicant_info": {
        "accountName": "Rahim Uddin",
        "email": "rahim@example.com",
        "mailingAddress": "House 12, Road 5, Dhanmondi, Dhaka",
        "nidDoc": file_desc(name="nid.pdf"),
        "photo": png(),
        "signature": png(name="signature.png"),
    },
    "deposit_details": {"depositAmount": 5000, "depositTerm": 12, "occupation": "Service"},
    "nominee_details": {"nominees": [nominee("Karim", 60), nominee("Salma", 40)]},
    "bank_details": {
        "bankAccountName": "Rahim Uddin",
        "accountNo": "0123-456789",
        "branchName": "Gulshan",
        "autoPayment": False,
    },
    "payment_terms": {"termsAccepted": True},
}

LOAN_STEPS = {
    "choose_product": {"loanType": "Personal", "customerSegment": "Salaried"},
    "loan_details": {"requestedAmount": 500000, "tenor": 36},
    "employment_income": {
        "employmentSector": "Private",
        "monthlyIncome": 85000,
        "employmentType": "Permanent",
        "location": "Dhaka",
        "address": "Plot 7, Banani, Dhaka",
    },
    "upload_documents": {
        "nidPassport": file_desc(name="nid.pdf"),
        "recentPhoto": png(),
        "incomeProof": file_desc(name="salary.pdf"),
    },
    "declarations": {"termsConditions": True},
}


@pytest.fixture
def deposit_steps():
    return copy.deepcopy(DEPOSIT_STEPS)


@pytest.fixture
def loan_steps():
    return copy.deepcopy(LOAN_STEPS)


@pytest.fixture
def make_file():
    return file_desc


@pytest.fixture
def make_nominee():
    return nominee
