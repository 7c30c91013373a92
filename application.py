"""Main application entry point."""

import atexit
import os

from ridesync import create_app, shutdown_app

app = create_app()
atexit.register(shutdown_app, app)

if __name__ == '__main__':
    host = os.environ.get('HOST', '127.0.0.1')
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') == 'development'

    app.run(host=host, port=port, debug=debug, use_reloader=False)
