from . import create_app
from .config import load_config

if __name__ == '__main__':
    config = load_config()
    create_app(config).run(host='0.0.0.0', port=config["port"])
