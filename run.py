import atexit

from tarantula import create_app
from tarantula.shared.logging_config import setup_logging
from tarantula.shared.settings import Settings

settings = Settings.from_env()
setup_logging(log_dir=settings.log_dir, to_file=settings.log_to_file)

app = create_app(settings)
atexit.register(app.extensions["tarantula"]["crawler_service"].shutdown, 5)


if __name__ == '__main__':
    app.run(debug=False, port=5000)
