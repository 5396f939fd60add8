"""
Flask JSON API for the tournament progression engine.
"""
import os
import random
from flask import Flask, request, jsonify

from progression.errors import (
    ConfigurationError, ConflictError, InconsistentStateError, TournamentError, ValidationError,
)
from progression.elimination import (
    calculate_elimination_ranking, compute_bracket_structure, generate_bracket, points_for_rank,
)
from progression.king import KingTournament
from progression.models import (
    KIND_ELIMINATION, NOT_STARTED, PHASE_IN_PROGRESS, Match, PhaseConfig, Pool, TeamRef,
)
from progression.propagation import BracketGraph, submit_score
from progression.standings import (
    RETURN_LEG_FORMATS, compute_standings, generate_pool_matches, select_qualified_teams,
)
from settings import DATA_DIR, SETTINGS_FILE, elimination_match_config, load_settings, pool_match_config
from storage import NotFoundError, YamlStore

app = Flask(__name__)


KING_RECORD_ID = 'tournament'
BRACKET_ID_PREFIX = 'bracket-'

ERROR_STATUS = {
    ConfigurationError: 400,
    ValidationError: 400,
    InconsistentStateError: 409,
    ConflictError: 409,
}


def get_store():
    """Store rooted at the current data directory."""
    return YamlStore(DATA_DIR)


def get_settings():
    return load_settings(os.path.join(DATA_DIR, SETTINGS_FILE))


def error_response(error):
    """JSON error body with the status code for an engine or storage error."""
    if isinstance(error, NotFoundError):
        return jsonify({'error': str(error)}), 404
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            app.logger.info(f'{error_type.__name__}: {error}')
            return jsonify({'error': str(error)}), status
    app.logger.error(f'Unhandled tournament error: {error}')
    return jsonify({'error': str(error)}), 500


def _pool_record(pool, **extra):
    record = pool.to_dict()
    record.pop('matches')
    record.update(extra)
    return record


def load_pool(store, pool_id):
    """Load a pool together with its matches."""
    record = store.require('pools', pool_id)
    matches = sorted(store.scan('matches', pool_id=pool_id), key=lambda m: m['match_number'])
    record['matches'] = matches
    return Pool.from_dict(record)


def load_king(store):
    """King tournament with the stored record version it was read at."""
    record = store.get('king', KING_RECORD_ID)
    if record is None:
        raise NotFoundError('King tournament has no registered entrants')
    return KingTournament.from_dict(record), record.get('version', 0)


def save_king(batch, tournament, version):
    """Stage the King record, failing the commit if another write got there first."""
    return batch.update('king', KING_RECORD_ID, tournament.to_dict(), expected_version=version)


def check_scorable(store, record):
    """Refuse pool results whose consequences were already drawn."""
    if record.get('kind') == KIND_ELIMINATION or not record.get('pool_id'):
        return
    pool = store.get('pools', record['pool_id'])
    if pool is None:
        return
    if 'phase_number' in pool:
        tournament, _ = load_king(store)
        phase = tournament.get_phase(pool['phase_number'])
        if phase.status != PHASE_IN_PROGRESS:
            raise InconsistentStateError(
                f'King phase {phase.phase_number} is {phase.status}; its matches can no longer be scored')
    elif pool.get('seeded_bracket'):
        raise InconsistentStateError(
            f"Pool {pool['id']} already seeded the bracket; its matches can no longer be scored")


@app.route('/api/bracket/structure', methods=['GET'])
def api_bracket_structure():
    """Bracket structure for a number of qualified teams."""
    teams = request.args.get('teams', type=int)
    if teams is None:
        return jsonify({'error': 'Query parameter "teams" must be an integer'}), 400
    try:
        structure = compute_bracket_structure(teams)
    except TournamentError as e:
        return error_response(e)
    return jsonify(structure.to_dict())


@app.route('/api/pools/<pool_id>/matches', methods=['POST'])
def api_generate_pool_matches(pool_id):
    """Create (or recreate) a pool and its round-robin matches."""
    data = request.get_json(silent=True) or {}
    store = get_store()
    settings = get_settings()

    try:
        if 'teams' in data:
            teams = [TeamRef.from_dict(t) if isinstance(t, dict) else TeamRef(t, t) for t in data['teams']]
            pool = Pool(pool_id, data.get('name', pool_id), teams=teams)
        else:
            pool = load_pool(store, pool_id)

        stored = store.get('pools', pool_id)
        if stored and stored.get('seeded_bracket'):
            raise InconsistentStateError(f'Pool {pool_id} already seeded the bracket')
        existing = store.scan('matches', pool_id=pool_id)
        if any(m['status'] not in NOT_STARTED for m in existing):
            raise InconsistentStateError(f'Pool {pool_id} already has results')

        return_leg = data.get('return_leg', settings['match_format'] in RETURN_LEG_FORMATS)
        matches = generate_pool_matches(pool, pool_match_config(settings), return_leg=return_leg)

        batch = store.batch()
        for record in existing:
            batch.delete('matches', record['id'])
        batch.set('pools', pool.id, _pool_record(pool))
        for match in matches:
            batch.set('matches', match.id, match.to_dict())
        batch.commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    app.logger.info(f'Generated {len(matches)} matches for pool {pool_id}')
    return jsonify({'success': True, 'matches': [m.to_dict() for m in matches]}), 201


@app.route('/api/pools/<pool_id>/standings', methods=['GET'])
def api_pool_standings(pool_id):
    """Current standings of a pool, recomputed from its matches."""
    try:
        pool = load_pool(get_store(), pool_id)
    except NotFoundError as e:
        return error_response(e)
    standings = compute_standings(pool)
    return jsonify({'pool_id': pool_id, 'standings': [e.to_dict() for e in standings]})


@app.route('/api/bracket', methods=['POST'])
def api_generate_bracket():
    """
    Generate the elimination bracket.

    Accepts either ``teams`` (ranked, best first) or builds the ranking from
    pool standings using ``qualified_per_pool`` / ``manual_ids``.
    """
    data = request.get_json(silent=True) or {}
    store = get_store()
    settings = get_settings()

    try:
        existing = store.scan('matches', kind=KIND_ELIMINATION)
        if any(m['status'] not in NOT_STARTED for m in existing):
            raise InconsistentStateError('Bracket already has results')

        if 'teams' in data:
            teams = data['teams']
            pool_ids = []
        else:
            pool_ids = data.get('pool_ids') or [p['id'] for p in store.scan('pools') if 'phase_number' not in p]
            pool_standings = {}
            for pool_id in pool_ids:
                pool = load_pool(store, pool_id)
                pool_standings[pool.name] = compute_standings(pool)
            teams = select_qualified_teams(
                pool_standings,
                data.get('qualified_per_pool', settings['teams_qualified_per_pool']),
                manual_ids=data.get('manual_ids'),
            )

        matches = generate_bracket(teams, elimination_match_config(settings), id_prefix=BRACKET_ID_PREFIX)
        structure = compute_bracket_structure(len(teams))

        batch = store.batch()
        for record in existing:
            batch.delete('matches', record['id'])
        for match in matches:
            batch.set('matches', match.id, match.to_dict())
        for record in store.scan('pools'):
            seeded = record['id'] in pool_ids
            if 'phase_number' not in record and bool(record.get('seeded_bracket')) != seeded:
                batch.update('pools', record['id'], {'seeded_bracket': seeded})
        batch.commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    app.logger.info(f'Generated bracket of {len(matches)} matches for {structure.total_slots} slots')
    return jsonify({
        'success': True,
        'structure': structure.to_dict(),
        'matches': [m.to_dict() for m in matches],
    }), 201


@app.route('/api/bracket/ranking', methods=['GET'])
def api_bracket_ranking():
    """Bracket ranking with the championship points each rank earns."""
    settings = get_settings()
    matches = [Match.from_dict(m) for m in get_store().scan('matches', kind=KIND_ELIMINATION)]
    try:
        ranking = calculate_elimination_ranking(matches)
        for entry in ranking:
            entry['championship_points'] = points_for_rank(entry['rank'], settings['rank_points'])
    except TournamentError as e:
        return error_response(e)
    return jsonify({'ranking': ranking})


@app.route('/api/matches/<match_id>/score', methods=['POST'])
def api_submit_score(match_id):
    """Record a match's sets and propagate its result in the same commit."""
    data = request.get_json(silent=True) or {}
    store = get_store()

    try:
        record = store.require('matches', match_id)
        check_scorable(store, record)
        if record.get('kind') == KIND_ELIMINATION:
            graph = BracketGraph.from_dicts(store.scan('matches', kind=KIND_ELIMINATION))
        else:
            graph = BracketGraph([Match.from_dict(record)])

        submission = submit_score(graph, match_id, data.get('sets'))
        expected_version = data.get('version', submission.expected_version)

        batch = store.batch()
        batch.update('matches', match_id, submission.update, expected_version=expected_version)
        for patch in submission.patches:
            batch.update('matches', patch.match_id, patch.to_update())
        batch.commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    return jsonify({
        'success': True,
        'match': store.get('matches', match_id),
        'patches': [p.to_dict() for p in submission.patches],
    })


@app.route('/api/king/entrants', methods=['POST'])
def api_king_entrants():
    """Register the King tournament's entrants (before phase 1 starts)."""
    data = request.get_json(silent=True) or {}
    entrants = data.get('entrants')
    if not isinstance(entrants, list) or not entrants:
        return jsonify({'error': 'Missing entrants'}), 400

    store = get_store()
    record = store.get('king', KING_RECORD_ID)
    tournament = KingTournament.from_dict(record) if record else KingTournament([])
    if any(p.status not in ('not_configured', 'configured') for p in tournament.phases):
        return jsonify({'error': 'Entrants cannot change once a phase has started'}), 409

    try:
        tournament = KingTournament(entrants, tournament.phases)
    except (KeyError, TypeError) as e:
        return jsonify({'error': f'Invalid entrant: {e}'}), 400

    try:
        if record is None:
            store.batch().set('king', KING_RECORD_ID, {**tournament.to_dict(), 'version': 0}).commit()
        else:
            save_king(store.batch(), tournament, record.get('version', 0)).commit()
    except ConflictError as e:
        return error_response(e)
    return jsonify({'success': True, 'entrants': [e.to_dict() for e in tournament.entrants]})


@app.route('/api/king/phases/<int:phase_number>/configure', methods=['POST'])
def api_king_configure(phase_number):
    data = request.get_json(silent=True) or {}
    data['phase_number'] = phase_number
    store = get_store()

    try:
        tournament, version = load_king(store)
        try:
            config = PhaseConfig.from_dict(data)
        except KeyError as e:
            raise ConfigurationError(f'Missing phase setting: {e}') from None
        phase = tournament.configure_phase(config)
        save_king(store.batch(), tournament, version).commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    return jsonify({
        'success': True,
        'phase': phase.to_dict(),
        'warnings': tournament.validate_phase_chain(),
    })


@app.route('/api/king/phases/<int:phase_number>/start', methods=['POST'])
def api_king_start(phase_number):
    """Draft the phase's pools and generate its matches."""
    data = request.get_json(silent=True) or {}
    store = get_store()

    try:
        tournament, version = load_king(store)
        seed = data.get('seed')
        draw = tournament.begin_phase(phase_number, random.Random(seed) if seed is not None else None)

        batch = store.batch()
        save_king(batch, tournament, version)
        for pool in draw.pools:
            batch.set('pools', pool.id, _pool_record(pool, phase_number=phase_number))
        for match in draw.matches:
            batch.set('matches', match.id, match.to_dict())
        batch.commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    app.logger.info(f'King phase {phase_number} started with {len(draw.pools)} pools')
    return jsonify({'success': True, **draw.to_dict()}), 201


@app.route('/api/king/phases/<int:phase_number>/complete', methods=['POST'])
def api_king_complete(phase_number):
    """Close the phase and compute its qualifiers."""
    store = get_store()

    try:
        tournament, version = load_king(store)
        pool_records = sorted(store.scan('pools', phase_number=phase_number), key=lambda p: p['id'])
        pools = [load_pool(store, p['id']) for p in pool_records]
        matches = [m for pool in pools for m in pool.matches]
        result = tournament.finish_phase(phase_number, pools, matches)
        save_king(store.batch(), tournament, version).commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    return jsonify({'success': True, **result.to_dict()})


def _adjust_phase(phase_number, adjust):
    data = request.get_json(silent=True) or {}
    ids = data.get('ids')
    if not isinstance(ids, list):
        return jsonify({'error': 'Expected a list of ids'}), 400
    store = get_store()

    try:
        tournament, version = load_king(store)
        phase = adjust(tournament, phase_number, ids)
        save_king(store.batch(), tournament, version).commit()
    except (TournamentError, NotFoundError) as e:
        return error_response(e)

    return jsonify({
        'success': True,
        'phase': phase.to_dict(),
        'next_participant_ids': phase.advancing_ids(),
    })


@app.route('/api/king/phases/<int:phase_number>/withdrawals', methods=['POST'])
def api_king_withdrawals(phase_number):
    return _adjust_phase(phase_number, KingTournament.set_withdrawals)


@app.route('/api/king/phases/<int:phase_number>/repechages', methods=['POST'])
def api_king_repechages(phase_number):
    return _adjust_phase(phase_number, KingTournament.set_repechages)


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
