# mlm_system/utils/rwlock.py
"""
Writer-preferring read/write lock for the tree structure.
"""
import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Waiting writers block new readers so a stream of hierarchy reads
    cannot starve registrations. The writer side is re-entrant for the
    owning thread; a writer may also take the read side.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = None
        self._writerDepth = 0
        self._writersWaiting = 0

    @contextmanager
    def reading(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                # nested read inside our own write section
                self._writerDepth += 1
                nested = True
            else:
                nested = False
                while self._writer is not None or self._writersWaiting:
                    self._cond.wait()
                self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                if nested:
                    self._writerDepth -= 1
                else:
                    self._readers -= 1
                    if self._readers == 0:
                        self._cond.notify_all()

    @contextmanager
    def writing(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._writerDepth += 1
            else:
                self._writersWaiting += 1
                try:
                    while self._writer is not None or self._readers:
                        self._cond.wait()
                finally:
                    self._writersWaiting -= 1
                self._writer = me
                self._writerDepth = 1
        try:
            yield
        finally:
            with self._cond:
                self._writerDepth -= 1
                if self._writerDepth == 0:
                    self._writer = None
                    self._cond.notify_all()
