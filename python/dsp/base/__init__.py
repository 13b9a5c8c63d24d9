"""
Base classes and utilities shared across the DSP (Services Platform) packages.

This includes the root exception class, :py:class:`DSPException`, and a mixin,
:py:class:`SystemInfoMixin`, that lets a class identify the system and subsystem it belongs to
(used mainly for naming loggers and for reporting versions).
"""

class SystemInfoMixin(object):
    """
    a mixin for providing information about the current system and subsystem
    """

    def __init__(self, sysname: str, sysabbrev: str, subsysname: str, subsysabbrev: str,
                 version: str):
        self._sysname = sysname
        self._sysabbrev = sysabbrev
        self._subname = subsysname
        self._subabbrev = subsysabbrev
        self._version = version

    @property
    def system_name(self):
        return self._sysname

    @property
    def system_abbrev(self):
        return self._sysabbrev

    @property
    def subsystem_name(self):
        return self._subname

    @property
    def subsystem_abbrev(self):
        return self._subabbrev

    @property
    def system_version(self):
        return self._version

    def getSysLogger(self):
        """
        return the logger associated with the system (and subsystem, if set)
        """
        import logging
        log = logging.getLogger(self.system_abbrev)
        if self.subsystem_abbrev:
            log = log.getChild(self.subsystem_abbrev)
        return log

class DSPException(Exception):
    """
    a general base class for exceptions raised by DSP software
    """

    def __init__(self, message=None, cause=None, sys=None):
        """
        create the exception
        :param str     message:  a description of the problem; if None, the message is taken
                                 from the ``cause``
        :param Exception cause:  an underlying exception that this one is wrapping
        :param SystemInfoMixin sys:  the system or subsystem where the error occurred
        """
        if not message:
            if cause:
                message = str(cause)
            else:
                message = "Unknown DSP Error"
        super(DSPException, self).__init__(message)
        self.cause = cause
        self.system = sys

    @property
    def message(self):
        return self.args[0]

