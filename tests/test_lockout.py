from sharedrop import lockout
from sharedrop.lockout import ComplianceState, LimitEnforcer
from sharedrop.plans import limits_for
from sharedrop.quota import Usage, usage_from_files

MB = 1000 * 1000


def _files(n, protected=0, size=MB):
    return [
        {"id": i, "size": size, "password_hash": "h" if i < protected else None}
        for i in range(n)
    ]


def test_at_the_ceiling_is_compliant():
    report = lockout.evaluate(Usage(active_files=5, protected_files=1, storage_bytes=500 * MB), limits_for("free"))
    assert report.state is ComplianceState.COMPLIANT
    assert report.message == ""


def test_over_limit_report():
    report = lockout.evaluate(Usage(active_files=50, protected_files=20), limits_for("free"))
    assert report.over_limit
    assert [v.resource for v in report.violations] == ["files", "protected"]
    assert report.message == "Has excedido tu límite de archivos activos (50/5)."


def test_storage_violation_message():
    report = lockout.evaluate(Usage(active_files=1, storage_bytes=600 * MB), limits_for("free"))
    assert report.message == "Has excedido tu límite de almacenamiento total (600 MB/500 MB)."


def test_redirects_only_when_over_limit():
    over = lockout.evaluate(Usage(active_files=6), limits_for("free"))
    assert lockout.redirect_for(over, "/dashboard") == lockout.CLEANUP_PATH
    assert lockout.redirect_for(over, "/dashboard/cleanup") is None
    assert lockout.redirect_for(over, "pricing/") is None

    ok = lockout.evaluate(Usage(active_files=5), limits_for("free"))
    assert lockout.redirect_for(ok, "/dashboard") is None


def test_usage_from_client_payloads():
    usage = usage_from_files([
        {"id": 1, "size": 10, "passwordHash": "x", "customLink": "a"},
        {"id": 2, "size": 5},
    ])
    assert usage.active_files == 2
    assert usage.protected_files == 1
    assert usage.custom_links == 1
    assert usage.storage_bytes == 15


def test_downgraded_user_cleanup_flow():
    # pro user with 50 files, 20 protected, now on free
    enforcer = LimitEnforcer(_files(50, protected=20), limits_for("free"))
    assert enforcer.state is ComplianceState.OVER_LIMIT
    assert enforcer.navigate("/dashboard/files") == lockout.CLEANUP_PATH

    for file_id in range(20, 50):
        enforcer.remove_file(file_id)
    # still 20 files, all protected
    assert enforcer.state is ComplianceState.OVER_LIMIT
    assert enforcer.take_confirmation() is False

    for file_id in range(5, 20):
        enforcer.remove_file(file_id)
    assert len(enforcer.files) == 5
    # 5 protected files is still over the single allowed password
    assert enforcer.state is ComplianceState.OVER_LIMIT

    for file_id in range(1, 5):
        enforcer.update_file({"id": file_id, "size": MB, "password_hash": None})
    assert enforcer.state is ComplianceState.COMPLIANT
    assert enforcer.navigate("/dashboard") is None
    assert enforcer.take_confirmation() is True
    assert enforcer.take_confirmation() is False


def test_compliant_from_the_start_never_confirms():
    enforcer = LimitEnforcer(_files(2), limits_for("free"))
    enforcer.remove_file(0)
    assert enforcer.state is ComplianceState.COMPLIANT
    assert enforcer.take_confirmation() is False


def test_enforcer_never_deletes_on_its_own():
    enforcer = LimitEnforcer(_files(8), limits_for("free"))
    enforcer.navigate("/dashboard")
    enforcer.update_file({"id": 99, "size": 1})
    assert len(enforcer.files) == 8
