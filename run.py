"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py db upgrade      # or: flask --app run.py db init/migrate first time
    flask --app run.py seed-demo
    flask --app run.py --debug run

"""

from promeasure import create_app

# WSGI application object; `flask run` and WSGI servers look for `app`.
app = create_app()

if __name__ == "__main__":
    # Dev only; use `flask run` or a WSGI server otherwise.
    app.run(debug=True)
