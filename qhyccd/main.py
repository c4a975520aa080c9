import uvicorn

from qhyccd.app import app
from qhyccd.config.config import Config


def main():
    server_conf = Config().get_server()
    uvicorn_config = uvicorn.Config(app=app, host=server_conf.host, port=server_conf.port)
    uvicorn.Server(config=uvicorn_config).run()


if __name__ == '__main__':
    main()
