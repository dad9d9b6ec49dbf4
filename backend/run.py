from quizduel import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server so the tick loop and websockets share one event loop in dev
    socketio.run(app, debug=True, use_reloader=False)
