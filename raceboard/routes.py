import io

from flask import Blueprint, Response, abort, current_app, redirect, render_template, request, url_for

from .datastore import RaceDataStore, name_to_dir
from .errors import RaceDataError
from .export import export_csv


bp = Blueprint('main', __name__)


def _store() -> RaceDataStore:
    return current_app.extensions["race_data"]


def _upload_bytes(field: str) -> bytes:
    """Return the raw bytes of an uploaded form file or abort with 400."""
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        abort(400, description=f"Missing file '{field}'.")
    return upload.read()


@bp.errorhandler(RaceDataError)
def handle_race_data_error(err: RaceDataError):
    if err.http_status >= 500:
        current_app.logger.error("%s %s failed: %s", request.method, request.path, err.message, exc_info=err)
    else:
        current_app.logger.warning("%s %s rejected: %s", request.method, request.path, err.message)
    return err.to_dict(), err.http_status


@bp.app_errorhandler(413)
def handle_too_large(_err):
    return {'error': "The uploaded file is too big. Please choose a file that's less than 1MB in size"}, 413


@bp.route('/')
def index():
    return render_template('index.html', title='Seasons', seasons=_store().list_seasons())


@bp.route('/newSeason', methods=['POST'])
def new_season():
    name = (request.form.get('new_season_name') or '').strip()
    current_app.logger.info("new season: %s", name)
    _store().add_season(name)
    return redirect(url_for('main.index'))


@bp.route('/upload/<season>', methods=['POST'])
def upload(season):
    """Create a race and attach its qualifying and race results."""
    race_name = (request.form.get('new_race_name') or '').strip()
    qualy_raw = _upload_bytes('qualy_result')
    race_raw = _upload_bytes('race_result')

    store = _store()
    store.add_race(season, race_name)
    try:
        store.add_results(season, race_name, qualy_raw, race_raw)
    except RaceDataError:
        # Do not leave an empty race behind for a rejected upload
        store.remove_race(season, race_name)
        raise
    return redirect(url_for('main.show_race', season=season, race=race_name))


@bp.route('/uploadEntryList/<season>', methods=['POST'])
def upload_entry_list(season):
    _store().add_entry_list(season, _upload_bytes('entry_list'))
    return redirect(url_for('main.index'))


@bp.route('/showEntryList/<season>')
def show_entry_list(season):
    entry_list = _store().get_entry_list(season)
    return render_template(
        'entrylist.html', title=f'Entry list {season}', season=season, entry_list=entry_list
    )


@bp.route('/show/<season>/<race>')
def show_race(season, race):
    result = _store().get_race_result(season, race)
    return render_template('race.html', title=f'{season} {race}', result=result)


@bp.route('/delete/<season>/<race>', methods=['POST'])
def delete_race(season, race):
    current_app.logger.info("delete race %s in season %s", race, season)
    _store().remove_race(season, race)
    return redirect(url_for('main.index'))


@bp.route('/addPenalty/<season>/<race>', methods=['POST'])
def add_penalty(season, race):
    pos = (request.form.get('pos') or '').strip()
    penalty = (request.form.get('penalty') or '').strip()
    current_app.logger.info("season %s race %s: add penalty %s to pos %s", season, race, penalty, pos)
    _store().add_penalty(season, race, penalty, pos)
    return redirect(url_for('main.show_race', season=season, race=race))


@bp.route('/export/csv/<season>/<race>/<split>')
def export_race(season, race, split):
    result = _store().get_race_result(season, race)
    buf = io.StringIO()
    export_csv(result, split, buf)
    filename = f"{name_to_dir(season)}_{name_to_dir(race)}_{name_to_dir(split)}.csv"
    return Response(
        buf.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )
