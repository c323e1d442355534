"""
Transport Tracker - REST API
FastAPI backend for driver time tracking and admin session management.
"""

import os
from datetime import datetime
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from dashboard.aggregations import (
    get_daily_overview,
    get_driver_performance,
    export_sessions_csv,
)
from dashboard.auth import (
    User,
    get_auth_router,
    hash_password,
    require_auth,
    require_permission,
)
from database.db import (
    SqliteSessionStore,
    create_user,
    get_connection,
    get_user,
    get_user_by_username,
    init_database,
    list_users,
)
from tracker.clock import format_time, get_local_now, get_local_date
from tracker.errors import AuditWriteError, StorageError
from tracker.forms import (
    end_of_day_notices,
    format_errors,
    parse_admin_edit_form,
    parse_end_of_day_form,
    parse_mileage,
    report_from_form,
)
from tracker.lifecycle import SessionService, TransitionResult
from tracker.metrics import calculate_time_metrics

# ============================================
# APP SETUP
# ============================================

app = FastAPI(
    title="Transport Tracker API",
    description="Work-session tracking for delivery drivers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = SqliteSessionStore()
service = SessionService(store)

# Values arrive from form inputs as strings or numbers
FormValue = Optional[Union[str, int, float]]


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_database()


app.include_router(get_auth_router())


def _parse_date(value: Optional[str]):
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")


def _session_payload(session) -> dict:
    if session is None:
        return None
    data = session.to_dict()
    data["metrics"] = calculate_time_metrics(session).to_dict()
    data["display"] = {
        "start_time": format_time(session.start_time),
        "end_time": format_time(session.end_time),
        "breaks": [{"start": format_time(b.start), "end": format_time(b.end)} for b in session.breaks],
    }
    return data


def _form_rejected(errors) -> HTTPException:
    return HTTPException(status_code=400, detail={"errors": errors, "message": format_errors(errors)})


def _storage_failure(error: StorageError) -> HTTPException:
    print(f"[API] Storage error: {error}")
    return HTTPException(status_code=500, detail=str(error))


def _transition_response(result: TransitionResult, status_code: int = 409) -> dict:
    """Guard and validation violations are returned inline, not as server errors."""
    if not result.ok:
        raise HTTPException(status_code=status_code, detail={
            "errors": result.errors,
            "status": result.state.value,
        })
    return {
        "status": result.state.value,
        "session": _session_payload(result.session),
    }


# ============================================
# HEALTH
# ============================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    try:
        with get_connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"
        count = 0

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "database": db_status,
        "sessions": count,
        "timestamp": get_local_now().isoformat()
    }


# ============================================
# DRIVER TIME TRACKING
# ============================================

class StartDayRequest(BaseModel):
    start_km: FormValue = None


class EndDayRequest(BaseModel):
    route_number: Optional[str] = None
    positive_deliveries: FormValue = None
    negative_deliveries: FormValue = None
    positive_pickups: FormValue = None
    negative_pickups: FormValue = None
    delivery_comments: Optional[str] = None
    pickup_comments: Optional[str] = None
    end_km: FormValue = None


class BreakEditRequest(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None


@app.get("/api/sessions/today", tags=["Tracking"])
async def get_today_session(user: User = Depends(require_permission('track'))):
    """Current state and session for the signed-in driver."""
    try:
        ctx = service.load_context(user.id)
    except StorageError as e:
        raise _storage_failure(e)
    return {
        "date": str(get_local_date()),
        "status": ctx.state.value,
        "session": _session_payload(ctx.session),
    }


@app.post("/api/sessions/start", tags=["Tracking"])
async def start_work_day(request: StartDayRequest, user: User = Depends(require_permission('track'))):
    """Start the work day, optionally recording the starting odometer."""
    start_km = parse_mileage(request.start_km, 'Starting KM')
    if not start_km.is_valid:
        raise _form_rejected([start_km.error])

    try:
        ctx = service.load_context(user.id)
        result = service.start_day(ctx, start_km.value)
    except StorageError as e:
        raise _storage_failure(e)
    return _transition_response(result)


@app.post("/api/sessions/break/start", tags=["Tracking"])
async def start_break(user: User = Depends(require_permission('track'))):
    try:
        ctx = service.load_context(user.id)
        result = service.start_break(ctx)
    except StorageError as e:
        raise _storage_failure(e)
    return _transition_response(result)


@app.post("/api/sessions/break/end", tags=["Tracking"])
async def end_break(user: User = Depends(require_permission('track'))):
    try:
        ctx = service.load_context(user.id)
        result = service.end_break(ctx)
    except StorageError as e:
        raise _storage_failure(e)
    return _transition_response(result)


@app.post("/api/sessions/end", tags=["Tracking"])
async def end_work_day(request: EndDayRequest, user: User = Depends(require_permission('track'))):
    """Submit the end-of-day report and close the day."""
    raw = request.model_dump()
    try:
        ctx = service.load_context(user.id)
        start_km = ctx.session.start_km if ctx.session else None
        form = parse_end_of_day_form(raw, start_km=start_km)
        if not form.is_valid:
            raise _form_rejected(form.errors)
        result = service.end_day(ctx, report_from_form(form))
    except StorageError as e:
        raise _storage_failure(e)

    response = _transition_response(result)
    response.update(end_of_day_notices(raw, start_km))
    return response


@app.post("/api/sessions/end/check", tags=["Tracking"])
async def check_end_of_day(request: EndDayRequest, user: User = Depends(require_permission('track'))):
    """Validate an end-of-day report without submitting it."""
    raw = request.model_dump()
    try:
        session = store.load_open_session_for_driver_today(user.id)
    except StorageError as e:
        raise _storage_failure(e)

    start_km = session.start_km if session else None
    form = parse_end_of_day_form(raw, start_km=start_km)
    response = {
        "valid": form.is_valid,
        "errors": form.errors,
        "message": format_errors(form.errors),
    }
    response.update(end_of_day_notices(raw, start_km))
    return response


@app.put("/api/sessions/today/breaks/{break_index}", tags=["Tracking"])
async def edit_break(break_index: int, request: BreakEditRequest,
                     user: User = Depends(require_permission('track'))):
    """Correct the start and/or end (HH:MM) of one of today's breaks. Index is 0-based."""
    if not request.start and not request.end:
        raise HTTPException(status_code=400, detail={"errors": ["Time is required"]})

    changes = request.model_dump(exclude_none=True)
    try:
        ctx = service.load_context(user.id)
        result = service.edit_break_times(ctx, break_index, changes)
    except StorageError as e:
        raise _storage_failure(e)
    return _transition_response(result, status_code=400)


# ============================================
# ADMIN: SESSIONS & AUDIT
# ============================================

class AdminSessionEdit(BaseModel):
    route_number: Optional[str] = None
    positive_deliveries: FormValue = None
    negative_deliveries: FormValue = None
    positive_pickups: FormValue = None
    negative_pickups: FormValue = None
    delivery_comments: Optional[str] = None
    pickup_comments: Optional[str] = None
    start_km: FormValue = None
    end_km: FormValue = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[str] = None
    breaks: Optional[List[BreakEditRequest]] = None


@app.get("/api/admin/sessions", tags=["Admin"])
async def list_sessions(
    start: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    driver_id: Optional[int] = Query(None, description="Filter by driver"),
    user: User = Depends(require_permission('edit_sessions'))
):
    sessions = store.list_sessions(driver_id=driver_id, start_date=_parse_date(start),
                                   end_date=_parse_date(end))
    return {
        "count": len(sessions),
        "sessions": [_session_payload(s) for s in sessions]
    }


@app.get("/api/admin/overview", tags=["Admin"])
async def daily_overview(
    date: Optional[str] = Query(None, description="Date (YYYY-MM-DD), defaults to today"),
    user: User = Depends(require_permission('edit_sessions'))
):
    return get_daily_overview(store, _parse_date(date))


@app.get("/api/admin/sessions/{session_id}", tags=["Admin"])
async def get_session(session_id: int, user: User = Depends(require_permission('edit_sessions'))):
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return _session_payload(session)


@app.put("/api/admin/sessions/{session_id}", tags=["Admin"])
async def edit_session(session_id: int, request: AdminSessionEdit,
                       user: User = Depends(require_permission('edit_sessions'))):
    """Correct a session. Every changed field is written to the edit history."""
    try:
        session = store.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")

        raw = request.model_dump(exclude_unset=True)
        form = parse_admin_edit_form(raw, session)
        if not form.is_valid:
            raise _form_rejected(form.errors)

        result = service.admin_edit(session, form.clean_data, user.id)
    except AuditWriteError as e:
        raise HTTPException(status_code=500, detail={
            "message": "Session saved but the edit history could not be recorded",
            "session": _session_payload(e.session),
        })
    except StorageError as e:
        raise _storage_failure(e)
    return _transition_response(result, status_code=400)


@app.get("/api/admin/sessions/{session_id}/history", tags=["Audit"])
async def session_history(session_id: int, user: User = Depends(require_permission('audit'))):
    history = store.get_session_history(session_id)
    return {"count": len(history), "history": history}


@app.get("/api/admin/audit", tags=["Audit"])
async def audit_history(
    editor_id: Optional[int] = Query(None, description="Filter by editing admin"),
    start: Optional[str] = Query(None, description="Edits on or after (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="Edits on or before (YYYY-MM-DD)"),
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(require_permission('audit'))
):
    start_date, end_date = _parse_date(start), _parse_date(end)
    start_dt = datetime.combine(start_date, datetime.min.time()) if start_date else None
    end_dt = datetime.combine(end_date, datetime.max.time()) if end_date else None
    history = store.get_audit_history(editor_id=editor_id, start=start_dt, end=end_dt, limit=limit)
    return {"count": len(history), "history": history}


@app.get("/api/admin/audit/stats", tags=["Audit"])
async def audit_statistics(user: User = Depends(require_permission('audit'))):
    return store.get_edit_statistics()


# ============================================
# ADMIN: USERS
# ============================================

class CreateUserRequest(BaseModel):
    name: str
    username: str
    password: str
    role: str = 'driver'
    mobile: Optional[str] = None
    email: Optional[str] = None


@app.get("/api/admin/users", tags=["Users"])
async def get_users(
    role: Optional[str] = Query(None, description="admin or driver"),
    user: User = Depends(require_permission('manage_users'))
):
    users = list_users(role)
    return {"count": len(users), "users": users}


@app.post("/api/admin/users", tags=["Users"], status_code=201)
async def add_user(request: CreateUserRequest, user: User = Depends(require_permission('manage_users'))):
    if request.role not in ('admin', 'driver'):
        raise HTTPException(status_code=400, detail="Role must be admin or driver")
    if get_user_by_username(request.username):
        raise HTTPException(status_code=409, detail="Username already exists")

    user_id = create_user(request.name, request.username, hash_password(request.password),
                          request.role, request.mobile, request.email)
    created = get_user(user_id)
    created.pop('password_hash', None)
    return created


# ============================================
# PERFORMANCE & EXPORT
# ============================================

@app.get("/api/performance", tags=["Performance"])
async def my_performance(
    days: int = Query(30, ge=1, le=366, description="Days of history"),
    user: User = Depends(require_auth())
):
    """Performance summary for the signed-in driver."""
    return get_driver_performance(store, user.id, days)


@app.get("/api/performance/{driver_id}", tags=["Performance"])
async def driver_performance(
    driver_id: int,
    days: int = Query(30, ge=1, le=366, description="Days of history"),
    user: User = Depends(require_permission('edit_sessions'))
):
    if get_user(driver_id) is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    return get_driver_performance(store, driver_id, days)


@app.get("/api/export/csv", tags=["Export"])
async def export_csv(
    start: str = Query(..., description="Start date (YYYY-MM-DD)"),
    end: str = Query(..., description="End date (YYYY-MM-DD)"),
    driver_id: Optional[int] = Query(None, description="Filter by driver"),
    user: User = Depends(require_permission('export'))
):
    """Export sessions as CSV."""
    start_date, end_date = _parse_date(start), _parse_date(end)
    output = export_sessions_csv(store, start_date, end_date, driver_id)
    filename = f"sessions_{start}_{end}.csv"

    return StreamingResponse(
        iter([output]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
