from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from quizduel.services.matches.stats import get_player_stats

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the QuizDuel match server!'})

@main.route('/api/profile/stats')
@login_required
def my_stats():
    return jsonify({'status': 'SUCCESS', 'data': {'stats': get_player_stats(current_user.id)}})
