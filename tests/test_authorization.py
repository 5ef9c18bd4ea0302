import pytest

from afyaclaims.core.errors import AuthorizationError
from afyaclaims.core.models import Identity
from afyaclaims.core.states import Operation, Role
from afyaclaims.services import AuthorizationGate


def identity(role):
    return Identity(id=f"{role.value}-1", email=f"{role.value}@afya.test", role=role)


def test_admin_may_do_everything():
    gate = AuthorizationGate()

    assert all(gate.permit(identity(Role.ADMIN), op) for op in Operation)


def test_patient_permissions():
    gate = AuthorizationGate()
    patient = identity(Role.PATIENT)

    assert gate.permit(patient, Operation.SUBMIT_CLAIM)
    assert gate.permit(patient, Operation.ENROLL_POLICY)
    assert gate.permit(patient, Operation.EDIT_DEPENDENTS)
    assert not gate.permit(patient, Operation.PROCESS_CLAIM)
    assert not gate.permit(patient, Operation.VIEW_ALL_CLAIMS)
    assert not gate.permit(patient, Operation.VIEW_AUDIT_TRAIL)


def test_front_desk_submits_only_on_behalf():
    gate = AuthorizationGate()
    desk = identity(Role.FRONT_DESK)

    assert gate.permit(desk, Operation.SUBMIT_CLAIM_ON_BEHALF)
    assert not gate.permit(desk, Operation.SUBMIT_CLAIM)
    assert not gate.permit(desk, Operation.PROCESS_CLAIM)


@pytest.mark.parametrize("role", [Role.DOCTOR, Role.NURSE, Role.PHARMACY])
def test_clinical_roles_only_manage_their_inbox(role):
    gate = AuthorizationGate()
    allowed = {op for op in Operation if gate.permit(identity(role), op)}

    assert allowed == {Operation.READ_NOTIFICATIONS, Operation.DELETE_NOTIFICATION}


def test_anonymous_caller_is_denied():
    gate = AuthorizationGate()

    assert not gate.permit(None, Operation.READ_NOTIFICATIONS)
    with pytest.raises(AuthorizationError):
        gate.require(None, Operation.READ_NOTIFICATIONS)


def test_require_names_the_operation():
    with pytest.raises(AuthorizationError, match="processClaim"):
        AuthorizationGate().require(identity(Role.NURSE), Operation.PROCESS_CLAIM)
