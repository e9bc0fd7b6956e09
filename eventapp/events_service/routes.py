"""
Events service routes: list, read, create, update, delete events, and attendance.
Handles event lifecycle management and participation.
"""

import logging
import re
from datetime import datetime, time as dt_time, timezone
from typing import Tuple, Dict, Any, Optional

from bson import ObjectId
from flask import Blueprint, request, jsonify, Response
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from eventapp.database.db_connection import get_db, EVENTS_COLLECTION
from eventapp.auth_service.utils import require_identity

events_bp = Blueprint("events", __name__)

# --- CONSTANTS FOR VALIDATION ---
REQUIRED_FIELDS = ["title", "place", "time", "category"]
EDITABLE_FIELDS = ["title", "description", "place", "time", "category", "img_url"]
DUPLICATE_TITLE = "DUPLICATE_TITLE"


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to a datetime object.

    Naive values are taken as server local time.

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed datetime in UTC, or None if invalid or not
        representable in UTC.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        val = val.strip()
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        parsed = datetime.fromisoformat(val)
        if parsed.tzinfo is None:
            parsed = parsed.astimezone()
        # Values near datetime.min/max cannot be shifted to UTC
        return parsed.astimezone(timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def to_iso(dt: datetime) -> str:
    """Format as a UTC ISO-8601 string with milliseconds, e.g. 2026-02-23T18:30:00.000Z."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def day_bound(val: str, end: bool = False) -> Optional[str]:
    """
    Pad a date-only filter value to the start or end of that local day.

    Args:
        val (str): 'YYYY-MM-DD'.
        end (bool): Pad to 23:59:59.999 instead of 00:00:00.000.

    Returns:
        str: ISO comparison string, or None if the date is invalid.
    """
    try:
        day = datetime.strptime(val.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
    bound = dt_time(23, 59, 59, 999000) if end else dt_time(0, 0, 0)
    try:
        return to_iso(datetime.combine(day, bound).astimezone())
    except (OverflowError, OSError):
        return None


def parse_event_id(event_id: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(event_id):
        return None
    return ObjectId(event_id)


def serialize_event(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an event document to JSON-safe types."""
    event = dict(doc)
    if "_id" in event:
        event["_id"] = str(event["_id"])
    if isinstance(event.get("createdAt"), datetime):
        event["createdAt"] = event["createdAt"].isoformat()

    attendees = []
    for attendee in event.get("attendees") or []:
        attendee = dict(attendee)
        if isinstance(attendee.get("joinedAt"), datetime):
            attendee["joinedAt"] = attendee["joinedAt"].isoformat()
        attendees.append(attendee)
    if "attendees" in event:
        event["attendees"] = attendees
    return event


def build_filter(args) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Translate list query parameters into a Mongo filter.

    Supported (all optional, combined with AND):
    - title, place: case-insensitive substring match.
    - category: exact match.
    - from, to: inclusive date range on `time` (YYYY-MM-DD).

    Returns:
        tuple: (query, error_message)
    """
    query: Dict[str, Any] = {}

    for key in ("title", "place"):
        value = (args.get(key) or "").strip()
        if value:
            query[key] = {"$regex": re.escape(value), "$options": "i"}

    category = (args.get("category") or "").strip()
    if category:
        query["category"] = category

    time_range: Dict[str, str] = {}
    if args.get("from"):
        start = day_bound(args["from"])
        if not start:
            return None, "Invalid 'from' date. Use YYYY-MM-DD."
        time_range["$gte"] = start
    if args.get("to"):
        end = day_bound(args["to"], end=True)
        if not end:
            return None, "Invalid 'to' date. Use YYYY-MM-DD."
        time_range["$lte"] = end
    if time_range:
        query["time"] = time_range

    return query, None


def load_owned_event(event_id: str) -> Tuple[Optional[ObjectId], Optional[Response], Optional[int]]:
    """
    Shared checks for owner-only mutations.

    Order: malformed id -> 400, no identity -> 401, not admin -> 403,
    missing event -> 404, not the creator -> 403.

    Returns:
        tuple: (object_id, error_response, status_code)
    """
    oid = parse_event_id(event_id)
    if not oid:
        return None, jsonify({"error": "Invalid event id"}), 400

    identity, _, err, code = require_identity(admin=True)
    if err:
        return None, err, code

    try:
        ev = get_db()[EVENTS_COLLECTION].find_one({"_id": oid}, projection={"createdBy": 1})
    except PyMongoError as e:
        logging.error(f"Database error loading event {event_id}: {e}")
        return None, jsonify({"error": "Failed to retrieve event"}), 500

    if not ev:
        return None, jsonify({"error": "Event not found"}), 404

    if ev.get("createdBy") != identity["sub"]:
        return None, jsonify({"error": "Permission denied"}), 403

    return oid, None, None


@events_bp.route("/api/events", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return all events matching the optional query filters.

    Returns:
        200: List of event objects (natural storage order).
        400: Malformed date filter.
        500: Database error.
    """
    query, error = build_filter(request.args)
    if error:
        return jsonify({"error": error}), 400

    try:
        events = [serialize_event(doc) for doc in get_db()[EVENTS_COLLECTION].find(query)]
    except PyMongoError as e:
        logging.error(f"Database error listing events: {e}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify(events), 200


@events_bp.route("/api/events/<event_id>", methods=["GET"])
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Get a single event by id.

    Returns:
        200: Event object.
        404: {"message": "Wrong event id format"} for a malformed id,
             empty body when the event does not exist.
    """
    oid = parse_event_id(event_id)
    if not oid:
        return jsonify({"message": "Wrong event id format"}), 404

    try:
        event = get_db()[EVENTS_COLLECTION].find_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error getting event: {e}")
        return jsonify({"error": "Failed to retrieve event"}), 500

    if not event:
        return Response(status=404), 404

    return jsonify(serialize_event(event)), 200


@events_bp.route("/api/events", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event (admins only).

    Validations:
    - title, place, time and category are required and non-blank.
    - time must be ISO-8601; it is stored normalized to UTC.
    - title must not already be used by another event.

    createdBy is always the caller's sub; any client value is ignored.

    Returns:
        201: { "id": str }
        400: Validation error.
        401/403: Not logged in / not an admin.
        409: { "code": "DUPLICATE_TITLE", "message": str }
        500: Database error.
    """
    identity, _, err, code = require_identity(admin=True)
    if err:
        return err, code

    data: Dict[str, Any] = request.get_json(silent=True) or {}

    # --- START VALIDATION ---
    missing = [f for f in REQUIRED_FIELDS if not isinstance(data.get(f), str) or not data[f].strip()]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    start = parse_dt(data["time"])
    if not start:
        return jsonify({"error": "Invalid time format. Use ISO-8601."}), 400
    # --- END VALIDATION ---

    title = data["title"].strip()
    new_event = {
        "title": title,
        "description": data.get("description"),
        "place": data["place"].strip(),
        "time": to_iso(start),
        "category": data["category"].strip(),
        "img_url": data.get("img_url"),
        "createdBy": identity["sub"],
        "createdAt": datetime.now(timezone.utc),
        "attendees": [],
    }

    conflict = jsonify({
        "code": DUPLICATE_TITLE,
        "message": "An event with that title already exists.",
    })

    events = get_db()[EVENTS_COLLECTION]
    try:
        if events.find_one({"title": title}, projection={"_id": 1}):
            return conflict, 409
        result = events.insert_one(new_event)
    except DuplicateKeyError:
        return conflict, 409
    except PyMongoError as e:
        logging.error(f"Database error creating event: {e}")
        return jsonify({"error": "Failed to create event"}), 500

    logging.info(f"[Events] {identity['sub']} created event {result.inserted_id}")
    return jsonify({"id": str(result.inserted_id)}), 201


@events_bp.route("/api/events/<event_id>", methods=["PUT"])
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Partially update an event.

    Permission:
    - Admin AND the creator of the event

    Only string fields that are non-blank after trimming are applied. The
    request is rejected without writing if nothing survives or `time`
    does not parse.

    Returns:
        200: Updated event.
        400: Invalid id, invalid time, or no changes.
        401/403: Not logged in / not admin / not the creator.
        404: Event not found.
        409: Another event already uses the new title.
    """
    oid, err, code = load_owned_event(event_id)
    if err:
        return err, code

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    changes: Dict[str, Any] = {}
    for key in EDITABLE_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            changes[key] = value.strip()

    if "time" in changes:
        parsed = parse_dt(changes["time"])
        if not parsed:
            return jsonify({"error": "Invalid time format. Use ISO-8601."}), 400
        changes["time"] = to_iso(parsed)

    if not changes:
        return jsonify({"error": "No changes"}), 400

    conflict = jsonify({
        "code": DUPLICATE_TITLE,
        "message": "An event with that title already exists.",
    })

    events = get_db()[EVENTS_COLLECTION]
    try:
        if "title" in changes and events.find_one(
            {"title": changes["title"], "_id": {"$ne": oid}}, projection={"_id": 1}
        ):
            return conflict, 409
        updated = events.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        return conflict, 409
    except PyMongoError as e:
        logging.error(f"Database error updating event {event_id}: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    if not updated:
        return jsonify({"error": "Event not found"}), 404

    return jsonify(serialize_event(updated)), 200


@events_bp.route("/api/events/<event_id>", methods=["DELETE"])
def delete_event(event_id: str) -> Tuple[Response, int]:
    """
    Delete an event if the caller is the admin who created it.
    """
    oid, err, code = load_owned_event(event_id)
    if err:
        return err, code

    try:
        result = get_db()[EVENTS_COLLECTION].delete_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error deleting event {event_id}: {e}")
        return jsonify({"error": "Failed to delete event"}), 500

    if result.deleted_count == 0:
        return jsonify({"error": "Event not found or already deleted"}), 404

    return Response(status=204), 204


# --- ATTENDANCE ---

def _attendance_target(event_id: str) -> Tuple[Optional[ObjectId], Optional[Dict[str, Any]], Optional[Response], Optional[int]]:
    """Malformed id is rejected before the identity check."""
    oid = parse_event_id(event_id)
    if not oid:
        return None, None, jsonify({"error": "Invalid event id"}), 400

    identity, _, err, code = require_identity()
    if err:
        return None, None, err, code

    return oid, identity, None, None


@events_bp.route("/api/events/<event_id>/attend", methods=["POST"])
def join_event(event_id: str) -> Tuple[Response, int]:
    """
    Join an event as the current user.

    Joining again refreshes joinedAt instead of adding a second entry.
    The attendee entry snapshots the user's profile at join time.

    Returns:
        204: Joined.
        400: Invalid id.
        401: Not logged in.
        404: Event not found.
    """
    oid, identity, err, code = _attendance_target(event_id)
    if err:
        return err, code

    sub = identity["sub"]
    now = datetime.now(timezone.utc)
    events = get_db()[EVENTS_COLLECTION]

    try:
        ev = events.find_one({"_id": oid}, projection={"attendees": 1})
        if not ev:
            return jsonify({"error": "Event not found"}), 404

        if any(a.get("userSub") == sub for a in ev.get("attendees") or []):
            events.update_one(
                {"_id": oid, "attendees.userSub": sub},
                {"$set": {"attendees.$.joinedAt": now}},
            )
        else:
            attendee = {
                "userSub": sub,
                "name": identity.get("name"),
                "email": identity.get("email"),
                "picture": identity.get("picture"),
                "joinedAt": now,
            }
            events.update_one(
                {"_id": oid, "attendees.userSub": {"$ne": sub}},
                {"$push": {"attendees": attendee}},
            )
    except PyMongoError as e:
        logging.error(f"Database error joining event {event_id}: {e}")
        return jsonify({"error": "Failed to join event"}), 500

    return Response(status=204), 204


@events_bp.route("/api/events/<event_id>/attend", methods=["DELETE"])
def leave_event(event_id: str) -> Tuple[Response, int]:
    """
    Leave an event. Leaving an event you never joined is a no-op.

    Returns:
        204: Left (or was not attending).
        400: Invalid id.
        401: Not logged in.
        404: Event not found.
    """
    oid, identity, err, code = _attendance_target(event_id)
    if err:
        return err, code

    try:
        result = get_db()[EVENTS_COLLECTION].update_one(
            {"_id": oid},
            {"$pull": {"attendees": {"userSub": identity["sub"]}}},
        )
    except PyMongoError as e:
        logging.error(f"Database error leaving event {event_id}: {e}")
        return jsonify({"error": "Failed to leave event"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Event not found"}), 404

    return Response(status=204), 204
