import pytest

from afyaclaims.config import get_settings
from afyaclaims.core.models import ClaimCreate
from afyaclaims.core.states import EnrollmentConflict, PolicyTier, Role
from afyaclaims.integrations.ledger import SimulatedLedger
from afyaclaims.services import build_services


@pytest.fixture
def settings():
    return get_settings(SECRET_KEY="test-secret", ENROLLMENT_CONFLICT=EnrollmentConflict.REJECT)


@pytest.fixture
def ledger():
    return SimulatedLedger()


@pytest.fixture
def services(settings, ledger):
    return build_services(settings, ledger=ledger)


@pytest.fixture
def admin(services):
    return services.directory.register("admin@afya.test", "admin-pass", Role.ADMIN, "Amina Admin")


@pytest.fixture
def patient(services):
    return services.directory.register("wanjiku@afya.test", "patient-pass", Role.PATIENT, "Wanjiku Kamau")


@pytest.fixture
def other_patient(services):
    return services.directory.register("otieno@afya.test", "patient-pass", Role.PATIENT, "Otieno Odhiambo")


@pytest.fixture
def front_desk(services):
    return services.directory.register("desk@afya.test", "desk-pass", Role.FRONT_DESK, "Front Desk")


@pytest.fixture
def doctor(services):
    return services.directory.register("daktari@afya.test", "doctor-pass", Role.DOCTOR, "Dr. Mwangi")


@pytest.fixture
async def kati_policy(services, patient):
    return await services.policies.enroll(patient, PolicyTier.KATI)


@pytest.fixture
def claim_request():
    def build(policy, amount=12000.0, services_rendered=None, **overrides):
        data = {
            "policy_id": policy.id,
            "facility_id": "facility-kenyatta",
            "claim_amount": amount,
            "services_rendered": services_rendered if services_rendered is not None else ["consultation", "lab tests"],
        }
        data.update(overrides)
        return ClaimCreate(**data)

    return build


@pytest.fixture
async def pending_claim(services, patient, kati_policy, claim_request):
    return await services.claims.submit(patient, claim_request(kati_policy))
