from fastapi import APIRouter, Depends
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import lockout
from sharedrop.deps import Account, get_current_account, get_current_user, get_db, require_admin
from sharedrop.models import SharedFile, User
from sharedrop.quota import usage_for
from sharedrop.schemas import FileRead, UserRead

router = APIRouter()


async def _compliance(db: AsyncSession, account: Account) -> lockout.ComplianceReport:
    usage = await usage_for(db, account.user.id)
    return lockout.evaluate(usage, account.limits)


def _report_body(report: lockout.ComplianceReport) -> dict:
    return {
        "state": report.state.value,
        "message": report.message,
        "usage": report.usage.as_dict(),
        "violations": [
            {"resource": v.resource, "used": v.used, "limit": v.limit} for v in report.violations
        ],
    }


@router.get("/me", response_model=UserRead)
async def me(current=Depends(get_current_user)):
    return current


@router.get("/me/limits")
async def my_limits(account: Account = Depends(get_current_account), db: AsyncSession = Depends(get_db)):
    limits = account.limits
    usage = await usage_for(db, account.user.id)
    return {
        "plan": account.plan.value,
        "plan_name": limits.name,
        "plan_expires_at": account.user.plan_expires_at,
        "limits": {
            "max_bytes": limits.max_bytes,
            "max_files": limits.max_files,
            "max_pwd": limits.max_pwd,
            "max_custom_links": limits.max_custom_links,
            "max_days": limits.max_days,
            "max_total_storage": limits.max_total_storage,
            "max_folders": limits.max_folders,
            "max_tags": limits.max_tags,
            "has_api_access": limits.has_api_access,
            "api_uploads_per_day": limits.api_uploads_per_day,
            "api_requests_per_hour": limits.api_requests_per_hour,
        },
        "usage": usage.as_dict(),
    }


@router.get("/me/compliance")
async def my_compliance(account: Account = Depends(get_current_account), db: AsyncSession = Depends(get_db)):
    return _report_body(await _compliance(db, account))


@router.get("/me/navigation")
async def check_navigation(
    path: str = "/",
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Where the client may go; over-limit accounts are held on the cleanup page."""
    report = await _compliance(db, account)
    redirect = lockout.redirect_for(report, path)
    return {"allowed": redirect is None, "redirect": redirect, "state": report.state.value}


@router.get("/me/cleanup")
async def cleanup_view(account: Account = Depends(get_current_account), db: AsyncSession = Depends(get_db)):
    report = await _compliance(db, account)
    if not report.over_limit:
        return {"redirect": lockout.DASHBOARD_PATH, **_report_body(report)}

    res = await db.exec(
        select(SharedFile).where(SharedFile.owner_id == account.user.id).order_by(SharedFile.size.desc())
    )
    return {
        "redirect": None,
        "plan": account.plan.value,
        "upgrade_path": lockout.UPGRADE_PATH,
        "files": [FileRead.model_validate(f) for f in res.all()],
        **_report_body(report),
    }


@router.get("/", response_model=list[UserRead], dependencies=[Depends(require_admin)])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.exec(select(User).order_by(User.created_at.desc()))
    return result.all()
