import os
import calendar
from dotenv import load_dotenv

import bleach
from datetime import datetime, date
from markdown import markdown
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import (
    Flask, Response, render_template, redirect, url_for, request, flash,
    abort, jsonify, current_app
)

from activities import ActivityStore, ValidationError, sort_activities
from calendar_ui import project_month, weeks, weekday_headers, shift_month
from persistence import (
    JsonFileGateway, ParseError, StorageError, DEFAULT_EXPORT_PREFIX,
    dumps, loads, export_filename
)

# Sanitising
# <img> and friends are not allowed yet

ALLOWED_TAGS = bleach.sanitizer.ALLOWED_TAGS.union({
    "p","br","pre","code","blockquote",
    "ul","ol","li",
    "strong","em","del",
    "h1","h2","h3","h4",
    "table","thead","tbody","tr","th","td","a",
    "div", "span"
})
ALLOWED_ATTRS = {
    "a": ["href", "title", "rel"],
    "code": ["class"],
    "span": ["class"],
    "pre": ["class"],
    "div": ["class"]
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

MARKDOWN_EXTENSIONS = [
    "fenced_code",
    "tables",
    "sane_lists",
    "pymdownx.superfences",
    "pymdownx.highlight",
    "pymdownx.tilde",
    "pymdownx.tasklist"
]

def sanitize_html(html: str) -> str:
    cleaned = bleach.clean(
        html,
        tags=list(ALLOWED_TAGS),
        attributes=ALLOWED_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )
    cleaned = bleach.linkify(cleaned)
    return cleaned

def render_description(text: str) -> str:
    if not text:
        return ""
    return sanitize_html(markdown(text, extensions=MARKDOWN_EXTENSIONS))

def _years(value: str) -> list[int]:
    return [int(y) for y in value.split(",") if y.strip()]

def count_activities(n: int) -> str:
    return f"{n} activity" if n == 1 else f"{n} activities"

load_dotenv()

def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=os.getenv("SECRET_KEY", "dev"),
        ACTIVITIES_FILE=os.getenv(
            "ACTIVITIES_FILE", os.path.join(app.root_path, "db", "activities.json")
        ),
        CALENDAR_TIMEZONE=os.getenv("CALENDAR_TIMEZONE", "Asia/Kolkata"),
        CALENDAR_TITLE=os.getenv("CALENDAR_TITLE", "A.U.P.School Kuntar"),
        CALENDAR_YEARS=_years(os.getenv("CALENDAR_YEARS", "2025,2026")),
        EXPORT_PREFIX=os.getenv("EXPORT_PREFIX", DEFAULT_EXPORT_PREFIX),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )
    if test_config is not None:
        app.config.from_mapping(test_config)

    try:
        tz = ZoneInfo(app.config["CALENDAR_TIMEZONE"])
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuntimeError(f"unknown CALENDAR_TIMEZONE {app.config['CALENDAR_TIMEZONE']!r}") from e
    app.config["CALENDAR_TZ"] = tz
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # one store per app: the operator's working session
    app.extensions["activity_store"] = ActivityStore(tz=tz)
    app.extensions["activity_gateway"] = JsonFileGateway(app.config["ACTIVITIES_FILE"], tz=tz)

    app.jinja_env.filters["markdown"] = render_description
    app.jinja_env.filters["long_date"] = lambda d: f"{d:%B} {d.day}, {d.year}"

    register_routes(app)
    return app

def get_store() -> ActivityStore:
    return current_app.extensions["activity_store"]

def get_gateway() -> JsonFileGateway:
    return current_app.extensions["activity_gateway"]

def today() -> date:
    return datetime.now(current_app.config["CALENDAR_TZ"]).date()

def _month_args():
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)

    if not year or not month:
        t = today()
        year, month = t.year, t.month
    return year, month

def _back_to():
    # return to the page the form was posted from, local paths only
    target = request.form.get("next", "")
    if target.startswith("/") and not target.startswith(("//", "/\\")):
        return redirect(target)
    return redirect(url_for("index"))

def register_routes(app):

    @app.route("/")
    def index():
        year, month = _month_args()
        try:
            cells = project_month(year, month, get_store())
        except ValueError:
            abort(404)

        show_list = request.args.get("list", type=int) == 1
        years = sorted(set(current_app.config["CALENDAR_YEARS"]) | {year})

        return render_template(
            "index.html",
            year=year,
            month=month,
            month_start=date(year, month, 1),
            weeks=weeks(cells),
            headers=weekday_headers(),
            prev_month=shift_month(year, month, -1),
            next_month=shift_month(year, month, 1),
            years=years,
            months=list(enumerate(calendar.month_name))[1:],
            show_list=show_list,
            activities=sort_activities(get_store()),
        )

    @app.route("/print")
    def print_view():
        year, month = _month_args()
        try:
            cells = project_month(year, month, get_store())
        except ValueError:
            abort(404)

        return render_template(
            "print.html",
            month_start=date(year, month, 1),
            weeks=weeks(cells),
            headers=weekday_headers(),
        )

    # Activities of one day, also the target of a double click on the grid

    @app.route("/day/<date_str>")
    def day_view(date_str: str):
        try:
            target_date = date.fromisoformat(date_str)
        except ValueError:
            abort(404)

        day_activities = [a for a in sort_activities(get_store()) if a.date == target_date]

        return render_template(
            "day_view.html",
            target_date=target_date,
            day_activities=day_activities,
        )

    @app.route("/new", methods=["POST"])
    def new_activity():
        title = request.form.get("title", "")
        date_str = request.form.get("date", "")
        description = request.form.get("description", "")

        try:
            activity = get_store().add(title, date_str, description)
        except ValidationError as e:
            current_app.logger.warning("Rejected activity: %s", e)
            flash("Missing information: please provide both a title and a date for the activity.", "error")
            return _back_to()

        current_app.logger.info("Added activity %s on %s", activity.id, activity.date)
        flash(f'Activity added: "{activity.title}" has been added to the calendar.', "success")
        return redirect(url_for("index", year=activity.date.year, month=activity.date.month))

    # DELETE. Forms only support GET / POST so POST stands in
    # the id travels in the form, ids are opaque and may contain "/"
    @app.route("/delete", methods=["POST"])
    def delete_activity():
        activity_id = request.form.get("id", "")
        if get_store().remove(activity_id):
            current_app.logger.info("Removed activity %s", activity_id)
        flash("Activity removed: the activity has been removed from the calendar.", "success")
        return _back_to()

    # File download / upload

    @app.route("/export")
    def export_activities():
        document = dumps(get_store())
        filename = export_filename(today(), current_app.config["EXPORT_PREFIX"])
        current_app.logger.info("Exported %d activities as %s", len(get_store()), filename)
        return Response(
            document,
            mimetype="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.route("/import", methods=["POST"])
    def import_activities():
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            flash("Error loading file: no file was selected.", "error")
            return _back_to()

        try:
            loaded = get_store().replace_all(loads(upload.read(), current_app.config["CALENDAR_TZ"]))
        except (ParseError, ValidationError) as e:
            current_app.logger.warning("Rejected import of %s: %s", upload.filename, e)
            flash(f"Error loading file: the selected file is not a valid calendar file ({e}).", "error")
            return _back_to()

        current_app.logger.info("Imported %d activities from %s", len(loaded), upload.filename)
        flash(f"Calendar loaded. Loaded {count_activities(len(loaded))} from file.", "success")
        return _back_to()

    # Server-side file, same one the JSON API reads and writes

    @app.route("/server/save", methods=["POST"])
    def save_to_server():
        try:
            get_gateway().save(get_store())
        except StorageError as e:
            current_app.logger.exception("Saving activities failed")
            flash(f"Error saving calendar: {e}", "error")
            return _back_to()

        current_app.logger.info("Saved %d activities to %s", len(get_store()), get_gateway().path)
        flash("Calendar saved: your activities have been saved on the server.", "success")
        return _back_to()

    @app.route("/server/load", methods=["POST"])
    def load_from_server():
        try:
            loaded = get_store().replace_all(get_gateway().load())
        except StorageError as e:
            current_app.logger.exception("Loading activities failed")
            flash(f"Error reading calendar: {e}", "error")
            return _back_to()
        except (ParseError, ValidationError) as e:
            current_app.logger.warning("Stored activities are invalid: %s", e)
            flash(f"Error loading calendar: the stored file is not a valid calendar file ({e}).", "error")
            return _back_to()

        current_app.logger.info("Loaded %d activities from %s", len(loaded), get_gateway().path)
        flash(f"Calendar loaded. Loaded {count_activities(len(loaded))} from the server.", "success")
        return _back_to()

    # Markdown preview of a description
    @app.route("/markdown_preview", methods=["POST"])
    def markdown_preview():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        text = data.get("text", "") or ""

        return jsonify({"html": render_description(text)})

    # JSON API over the server-side file

    @app.route("/activities", methods=["GET"])
    def read_activities():
        try:
            activities = get_gateway().load()
        except (StorageError, ParseError) as e:
            current_app.logger.warning("GET /activities failed: %s", e)
            return jsonify({"error": "Failed to load activities."}), 500
        return jsonify([a.to_record() for a in activities])

    @app.route("/activities", methods=["POST"])
    def write_activities():
        try:
            # a scratch store checks ids and fills in missing ones
            staged = ActivityStore(tz=current_app.config["CALENDAR_TZ"])
            activities = staged.replace_all(loads(request.get_data(), current_app.config["CALENDAR_TZ"]))
        except (ParseError, ValidationError) as e:
            current_app.logger.warning("POST /activities rejected: %s", e)
            return jsonify({"error": str(e)}), 400

        try:
            get_gateway().save(activities)
        except StorageError:
            current_app.logger.exception("POST /activities failed")
            return jsonify({"error": "Failed to save activities."}), 500
        return jsonify({"success": True})


app = create_app()


if __name__ == "__main__":
    app.run(debug=os.getenv("FLASK_DEBUG") == "1")
