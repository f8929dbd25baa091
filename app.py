# app.py
import logging
import uuid
from typing import List, Optional

from dateutil import parser as dparse
from fastapi import Body, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import ValidationError

import settings
from booking import NoMembersError, book_slot
from builder import InvalidConstraintsError, find_common_free_slots
from eventbus import booking_stream, bus
from gcal import CalendarPushError, creds_from_dict, creds_to_dict, push_booking
from ics import build_ics
from models import Calendar, Event, Group, SchedulingConstraints
from parsing import parse_smart
from store import GroupNotFoundError, GroupStore, load_user_creds, save_user_creds

logger = logging.getLogger("app")
root_logger = logging.getLogger()
if not root_logger.handlers:
    # avoid duplicate handlers on reload
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(ch)
root_logger.setLevel(settings.LOG_LEVEL)

store = GroupStore()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _server_error(where: str) -> JSONResponse:
    logger.exception("%s failed", where)
    return _error("Internal server error", 500)


def _group_summary(group: Group, member_id: Optional[str] = None, member_name: Optional[str] = None) -> dict:
    return {
        "id": group.id,
        "code": group.code,
        "name": group.name,
        "memberId": member_id,
        "memberName": member_name,
    }


def _scheduling_calendars(group: Group, user_ids: Optional[List[str]]) -> List[Calendar]:
    """Calendars of included members, optionally narrowed to user_ids."""
    calendars = []
    for m in group.members:
        if not m.is_included or (user_ids and m.id not in user_ids):
            continue
        calendars.append(m.calendar.model_copy(update={"user_name": m.calendar.user_name or m.name}))
    return calendars


@app.get("/healthz")
def health():
    return {"ok": True}


# ---------- groups ----------
@app.post("/groups")
def groups(body: dict = Body(...)):
    action = body.get("action")
    try:
        if action == "create":
            group, creator = store.create_group(body.get("groupName"), body.get("memberName"))
            out = _group_summary(group, creator.id if creator else None, creator.name if creator else None)
            out["joinLink"] = f"{settings.APP_BASE_URL}/group/{group.code}"
            return {"success": True, "group": out}

        if action == "join":
            code = body.get("groupCode")
            name = (body.get("memberName") or "").strip()
            if not code or not name:
                return _error("Group code and member name are required", 400)
            group, member = store.join_group(code, name)
            return {"success": True, "group": _group_summary(group, member.id, member.name)}

        return _error("Invalid action", 400)
    except GroupNotFoundError:
        return _error("Group not found", 404)
    except Exception:
        return _server_error("groups")


@app.get("/groups/{group_id}")
def group_detail(group_id: str):
    try:
        group = store.get_group(group_id)
        if not group:
            return _error("Group not found", 404)
        return {
            "success": True,
            "group": {
                "id": group.id,
                "code": group.code,
                "name": group.name,
                "members": [{"id": m.id, "name": m.name, "isIncluded": m.is_included} for m in group.members],
                "createdAt": group.created_at.isoformat(),
                "updatedAt": group.updated_at.isoformat(),
            },
        }
    except Exception:
        return _server_error("group_detail")


@app.post("/groups/{group_id}/members/{member_id}/include")
def member_include(group_id: str, member_id: str, body: dict = Body(...)):
    if "isIncluded" not in body:
        return _error("isIncluded is required", 400)
    try:
        member = store.set_member_included(group_id, member_id, bool(body["isIncluded"]))
        return {"success": True, "member": {"id": member.id, "name": member.name, "isIncluded": member.is_included}}
    except GroupNotFoundError:
        return _error("Group or member not found", 404)
    except Exception:
        return _server_error("member_include")


# ---------- calendars ----------
@app.get("/cal/{group_id}")
def calendars(group_id: str):
    try:
        group = store.get_group(group_id)
        if not group:
            return _error("Group not found", 404)
        cals = [
            {"userId": m.id, "userName": m.name, "events": [e.dump() for e in m.calendar.events]}
            for m in group.members
        ]
        return {"success": True, "calendars": cals}
    except Exception:
        return _server_error("calendars")


@app.post("/cal/{group_id}/{member_id}/events")
def add_events(group_id: str, member_id: str, body: dict = Body(...)):
    raw = body.get("events") or []
    try:
        events = [Event.model_validate({"id": str(uuid.uuid4()), **e}) for e in raw]
    except ValidationError as e:
        return _error(f"Invalid events: {e.errors()[0].get('msg')}", 400)
    try:
        member = store.add_member_events(group_id, member_id, events)
        return {"success": True, "added": len(events), "total": len(member.calendar.events)}
    except GroupNotFoundError:
        return _error("Group or member not found", 404)
    except Exception:
        return _server_error("add_events")


# ---------- parse / schedule / book ----------
@app.post("/parse")
def parse(body: dict = Body(...)):
    transcript = (body.get("transcript") or "").strip()
    if not transcript:
        return _error("Transcript is required", 400)
    try:
        parsed = parse_smart(transcript)
        logger.info("parse: %r -> %s", transcript, parsed.normalized_summary)
        out = parsed.dump()
        out["success"] = True
        return out
    except Exception:
        return _server_error("parse")


@app.post("/schedule")
def schedule(body: dict = Body(...)):
    group_id = body.get("groupId")
    if not group_id or not body.get("constraints"):
        return _error("Group ID and constraints are required", 400)
    try:
        constraints = SchedulingConstraints.model_validate(body["constraints"])
        now = dparse.isoparse(body["now"]) if body.get("now") else None

        group = store.get_group(group_id)
        if not group:
            return _error("Group not found", 404)

        cals = _scheduling_calendars(group, body.get("userIds"))
        suggestions = find_common_free_slots(cals, constraints, settings.MAX_SUGGESTIONS, now=now)
        logger.info("schedule: group=%s calendars=%d suggestions=%d", group_id, len(cals), len(suggestions))
        return {"success": True, "suggestions": [s.dump() for s in suggestions]}
    except (InvalidConstraintsError, ValidationError, ValueError) as e:
        return _error(f"Invalid constraints: {e}", 400)
    except Exception:
        return _server_error("schedule")


@app.post("/book")
def book(body: dict = Body(...)):
    group_id = body.get("groupId")
    user_ids = body.get("userIds")
    slot = body.get("slot") or {}
    if not group_id or not user_ids or not slot.get("start") or not slot.get("end"):
        return _error("Group ID, user IDs, and slot are required", 400)
    try:
        event, updated = book_slot(
            store, group_id, user_ids,
            dparse.isoparse(slot["start"]), dparse.isoparse(slot["end"]),
            title=body.get("title"), location=body.get("location"), event_bus=bus,
        )
        return {"success": True, "event": event.dump(), "updatedMembers": updated}
    except GroupNotFoundError:
        return _error("Group not found", 404)
    except NoMembersError as e:
        return _error(str(e), 400)
    except (ValidationError, ValueError) as e:
        return _error(f"Invalid slot: {e}", 400)
    except Exception:
        return _server_error("book")


# ---------- export / notifications ----------
@app.post("/ics")
def ics(body: dict = Body(...)):
    title, start, end = body.get("title"), body.get("start"), body.get("end")
    if not title or not start or not end:
        return PlainTextResponse("Missing title/start/end", status_code=400)
    try:
        content = build_ics(title, start, end, body.get("description"), body.get("location"))
    except ValueError:
        return PlainTextResponse("Failed to generate ICS", status_code=400)
    return Response(
        content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="event.ics"'},
    )


@app.get("/events/stream")
def events_stream(groupId: Optional[str] = Query(None)):
    return StreamingResponse(
        booking_stream(bus, groupId),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ---------- google calendar push ----------
@app.post("/google/connect")
def google_connect(body: dict = Body(...)):
    member_id = body.get("memberId")
    creds = body.get("credentials")
    if not member_id or not isinstance(creds, dict) or not creds.get("token"):
        return _error("memberId and credentials.token are required", 400)
    save_user_creds(member_id, creds_to_dict(creds_from_dict(creds)))
    return {"success": True, "connected": True}


@app.get("/google/status")
def google_status(memberId: str = Query(...)):
    return {"success": True, "connected": load_user_creds(memberId) is not None}


@app.post("/google/event")
def google_event(body: dict = Body(...)):
    member_id = body.get("memberId")
    if not member_id or not body.get("event"):
        return _error("memberId and event are required", 400)
    try:
        event = Event.model_validate({"id": str(uuid.uuid4()), "title": settings.DEFAULT_MEETING_TITLE, **body["event"]})
        created = push_booking(member_id, event, body.get("attendees") or [])
        if created is None:
            return JSONResponse({"success": False, "error": "not_connected"}, status_code=401)
        return {"success": True, "eventId": created.get("id"), "htmlLink": created.get("htmlLink")}
    except ValidationError as e:
        return _error(f"Invalid event: {e.errors()[0].get('msg')}", 400)
    except CalendarPushError as e:
        logger.warning("google_event: %s", e)
        return _error("google_api_error", 502)
    except Exception:
        return _server_error("google_event")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=settings.PORT)
