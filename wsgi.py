"""WSGI entry point: ``gunicorn -c gunicorn_config.py wsgi:app``."""
import os

from school_erp import create_app

app = create_app(os.environ.get('FLASK_ENV', 'production'))


def main():
    """Run the development server."""
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=app.config['DEBUG'])


if __name__ == '__main__':
    main()
