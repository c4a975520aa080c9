from abc import ABC, abstractmethod
from enum import IntFlag
from threading import Timer, Lock
import logging
import os
import io

from qhyccd.config.config import Config
import datetime
from typing import List

default_log_level = logging.DEBUG
default_encoding = "utf-8"

BASE_QHYCCD_PATH = '/qhyccd/'


class Timing:
    start_time: datetime.datetime
    end_time: datetime.datetime
    duration: datetime.timedelta

    def __init__(self):
        self.start_time = datetime.datetime.now()

    def end(self):
        self.end_time = datetime.datetime.now()
        self.duration = self.end_time - self.start_time


class Activities:
    activities: IntFlag = 0
    timings: dict
    Idle = 0

    def __init__(self):
        self.timings = dict()

    def start_activity(self, activity: IntFlag):
        self.activities |= activity
        self.timings[activity] = Timing()
        self.logger.info(f"started activity {activity.__repr__()}")

    def end_activity(self, activity: IntFlag):
        if not self.is_active(activity):
            return
        self.activities &= ~activity
        self.timings[activity].end()
        self.logger.info(f"ended activity {activity.__repr__()}, duration={self.timings[activity].duration}")

    def is_active(self, activity):
        return (self.activities & activity) != 0

    def is_idle(self):
        return self.activities == 0

    def __repr__(self):
        return self.activities.__repr__()


class RepeatTimer(Timer):
    def run(self):
        while not self.finished.wait(self.interval):
            self.function(*self.args, **self.kwargs)


class SingletonFactory:
    _instances = {}
    _lock = Lock()

    @staticmethod
    def get_instance(class_type):
        with SingletonFactory._lock:
            if class_type not in SingletonFactory._instances:
                SingletonFactory._instances[class_type] = class_type()
        return SingletonFactory._instances[class_type]


class DailyFileHandler(logging.FileHandler):

    filename: str = ''
    path: str
    top: str

    def make_file_name(self):
        """
        Produces file names for the DailyFileHandler, which rotates them daily at noon.
        The filename has the format <top>/<daily>/<path> and includes:
        * The top folder (the configured logs folder)
        * The daily section (current date as %Y-%m-%d, an observing night belongs to the date it started on)
        * The bottom path, supplied by the user
        Example:
        * ~/qhyccd/logs/2024-02-17/qhyccd.log
        :return:
        """
        now = datetime.datetime.now()
        if now.hour < 12:
            now = now - datetime.timedelta(days=1)
        return os.path.join(self.top, f'{now:%Y-%m-%d}', self.path)

    def emit(self, record: logging.LogRecord):
        """
        Overrides the logging.FileHandler's emit method.  It is called every time a log record is to be emitted.
        This function checks whether the handler's filename includes the current date segment.
        If not:
        * A new file name is produced
        * The handler's stream is closed
        * A new stream is opened for the new file
        The record is emitted.
        :param record:
        :return:
        """
        filename = self.make_file_name()
        if not filename == self.filename:
            if self.stream is not None:
                # we have an open file handle, clean it up
                self.stream.flush()
                self.stream.close()
                self.stream = None

            self.filename = filename
            self.baseFilename = filename
            os.makedirs(os.path.dirname(self.baseFilename), exist_ok=True)
            self.stream = self._open()
        logging.StreamHandler.emit(self, record=record)

    def __init__(self, top: str, path: str, mode='a', encoding=None, delay=True, errors=None):
        self.top = top
        self.path = path
        if "b" not in mode:
            encoding = io.text_encoding(encoding)
        logging.FileHandler.__init__(self, filename='', delay=delay, mode=mode, encoding=encoding, errors=errors)


class PathMaker:
    top_folder: str

    def __init__(self):
        self.top_folder = os.path.expanduser(Config().get_global().top_folder)

    @staticmethod
    def make_seq(folder: str, camera: str | None = None) -> str:
        """
        Creates a sequence number by maintaining a '.seq' file.
        The sequence may be camera specific or camera agnostic.
        :param folder: Where to maintain the '.seq' file
        :param camera: What camera is the sequence for
        :return: The resulting sequence string
        """
        if camera:
            seq_file = os.path.join(folder, f'.{camera}.seq')
        else:
            seq_file = os.path.join(folder, '.seq')

        os.makedirs(os.path.dirname(seq_file), exist_ok=True)
        if os.path.exists(seq_file):
            with open(seq_file) as f:
                seq = int(f.readline())
        else:
            seq = 0
        seq += 1
        with open(seq_file, 'w') as file:
            file.write(f'{seq}\n')

        return f"{seq:04d}"

    def make_daily_folder_name(self):
        d = os.path.join(self.top_folder, datetime.datetime.now().strftime('%Y-%m-%d'))
        os.makedirs(d, exist_ok=True)
        return d

    def make_exposure_file_name(self, camera: str, live: bool = False):
        folder = os.path.join(self.make_daily_folder_name(), 'Live' if live else 'Exposures')
        os.makedirs(folder, exist_ok=True)
        return os.path.join(folder, f'exposure-{camera}-{PathMaker.make_seq(folder, camera=camera)}')

    def make_logs_folder_name(self):
        return os.path.join(self.top_folder, 'logs')


def init_log(logger: logging.Logger, level: int | None = None):
    if logger.handlers:
        return

    conf = Config().get_global()
    logger.propagate = False
    if level is None:
        level = logging.getLevelName(conf.log_level.upper())
        if not isinstance(level, int):
            level = default_log_level
    logger.setLevel(level)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    formatter = logging.Formatter('%(asctime)s - %(levelname)-8s - {%(name)s:%(funcName)s:%(threadName)s:%(thread)s}' +
                                  ' -  %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if not conf.log_to_file:
        return

    path_maker = SingletonFactory.get_instance(PathMaker)
    handler = DailyFileHandler(top=path_maker.make_logs_folder_name(), path='qhyccd.log', mode='a')
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


class Component(ABC, Activities):

    @abstractmethod
    def startup(self):
        """
        Called when the controlling application starts (e.g. the FastAPI lifespan)
        :return:
        """
        pass

    @abstractmethod
    def shutdown(self):
        """
        Called when the controlling application terminates
        :return:
        """
        pass

    @abstractmethod
    def abort(self):
        """
        Immediately terminates any in-progress activities and returns the component to its
         default state.
        :return:
        """
        pass

    @abstractmethod
    def status(self):
        """
        Returns the component's current status
        :return:
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """The getter method for the abstract name property."""
        pass

    @property
    @abstractmethod
    def operational(self) -> bool:
        """The getter method for the abstract operational property."""
        pass

    @property
    @abstractmethod
    def why_not_operational(self) -> List[str]:
        pass

    def info(self, *args, **kwargs):
        self._log(logging.INFO, *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._log(logging.WARNING, *args, **kwargs)

    def error(self, *args, **kwargs):
        self._log(logging.ERROR, *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._log(logging.DEBUG, *args, **kwargs)

    def _log(self, level: int, *args, **kwargs):
        # Prepend self.name to the message
        if args:
            message = f"{self.name}: {args[0]}"
            args = (message,) + args[1:]
        else:
            args = (f"{self.name}: ",)
        kwargs.setdefault('stacklevel', 3)
        self.logger.log(level, *args, **kwargs)
