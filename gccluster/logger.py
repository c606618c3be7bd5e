"""
Logging configuration for clustering simulations.

Provides centralized logging setup with custom formatting, shared handlers,
virtual-time stamping and logger management. Supports console and file output
with independent configuration for the main logger and the radio network
logger.


Functions
---------
**Setup Functions:**

    setupMain(fileName, fileFormat, fileLevel, outFormat, outLevel)
        Configure and return main program logger.
    setupNet(name, fileName, file, out)
        Configure and return radio network logger.

**Logger Management:**

    addLog(name)
        Create logger that uses main logger handlers.
    noneLog(name)
        Create logger with no handlers (warnings only).
    removeLog(name)
        Remove logger and close unshared handlers.

**Handler Management:**

    addMainHandlers(subLog)
        Add main logger handlers to sublevel logger.
    removeHandlers(name)
        Remove all handlers from logger, closing unshared ones.
    closeHandler(handler)
        Close handler and update global variables.
    deepRemoveHandler(handler)
        Remove handler from all loggers and close it.


Global Variables
----------------
log : logging.Logger
    Main logger instance, None until setupMain() runs.
consoleHandler : logging.StreamHandler
    Shared console output handler.
fileHandler : logging.FileHandler
    Shared file output handler.
simTime : str
    Current virtual time stamped onto every log record.


Notes
-----
The EventScheduler assigns simTime before firing each event, so every record
emitted from inside a node handler carries the virtual time of that event.
Module loggers created with addLog() before the main logger exists are kept
in a pending list and receive the main handlers once setupMain() is called.
Until then their records propagate to the root logger only.
"""

from typing import Optional
from datetime import datetime
import logging
import os

#-----------------------------------------------------------------------------#

# Logging levels
DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR

# Log record component formats
SIMTIME = '%(simTime)10s'
DATETIME = '%(asctime)s'
NAME = '%(name)-9s'
LEVEL = '%(levelname)-7s'
FUNCTION = '%(funcName)s'
MESSAGE = '%(message)s'

# Formatting strings
FMT_DATE = '%H:%M:%S'
FMT_OUT = '|' + SIMTIME + '| ' + NAME + ' : ' + LEVEL + ' > ' + MESSAGE
FMT_FILE = ('|' + SIMTIME + ' ' + DATETIME + '| ' + NAME + ' ' + LEVEL + ' '
            + FUNCTION + ' : ' + MESSAGE)

# Main logger name
MAIN_LOG = 'gccluster'

# Global variables -----------------------------------------------------------#

log = None
consoleHandler = None
fileHandler = None

# Loggers waiting for main handlers
pending = []

# Virtual time field
oldFactory = logging.getLogRecordFactory()
simTime = '0.000'

###############################################################################

class CustomFormatter(logging.Formatter):
    """
    Log formatter with bracketed function names and multi-line support.

    Function names are wrapped in brackets and padded. When a message
    contains newlines, the log prefix is repeated on every line so multi-line
    reports (network statistics, simulation summaries) stay aligned.
    """

    def format(self, record):
        if not (record.funcName.startswith("[")):
            func = f"[{record.funcName}]"
            record.funcName = f"{func:22}"

        # Repeat prefix on each line of multi-line messages
        newline = '\n'
        if (isinstance(record.msg, str) and newline in record.msg):
            record = logging.makeLogRecord(record.__dict__)
            prefixFmt, _, _ = self._fmt.partition(MESSAGE)
            if (DATETIME in prefixFmt):
                record.asctime = self.formatTime(record, self.datefmt)
            prefix = prefixFmt % record.__dict__
            record.msg = (newline + prefix).join(record.msg.split(newline))

        return super().format(record)

###############################################################################

def customRecordFactory(*args, **kwargs):
    """
    Create log record carrying the current virtual time.


    Returns
    -------
    record : logging.LogRecord
        Log record with simTime attribute from the module-level simTime.
    """

    record = oldFactory(*args, **kwargs)
    record.simTime = simTime
    return record

###############################################################################

def addMainHandlers(subLog:logging.Logger)->None:
    """Attach the existing main handlers (console, file) to subLog."""

    if (consoleHandler is not None):
        subLog.addHandler(consoleHandler)
    if (fileHandler is not None):
        subLog.addHandler(fileHandler)
    subLog.debug('%s logger activated', subLog.name)

###############################################################################

def setupMain(fileName:Optional[str] = MAIN_LOG+'.log',
              fileFormat:Optional[str] = FMT_FILE,
              fileLevel:int = DEBUG,
              outFormat:Optional[str] = FMT_OUT,
              outLevel:int = INFO,
              )->logging.Logger:
    """
    Configure and return main program logger with console and file handlers.


    Parameters
    ----------
    fileName : str, default='gccluster.log'
        Log file name.
    fileFormat : str, optional
        Format string for file handler. If None, file output disabled.
    fileLevel : int, default=DEBUG
        Minimum log level for file handler.
    outFormat : str, optional
        Format string for console handler. If None, console output disabled.
    outLevel : int, default=INFO
        Minimum log level for console handler.


    Returns
    -------
    log : logging.Logger
        Main logger instance with configured handlers.


    Notes
    -----
    - Installs the virtual-time log record factory.
    - Attaches main handlers to every pending module logger.
    - Calling again while the main logger exists returns it unchanged.
    """

    global log, consoleHandler, fileHandler

    if (log is None):
        logging.setLogRecordFactory(customRecordFactory)
        log = logging.getLogger(MAIN_LOG)
        log.setLevel(DEBUG)

        if (outFormat is not None):
            if (consoleHandler is None):
                consoleHandler = logging.StreamHandler()
                consoleHandler.set_name('Console handler')
                consoleHandler.setLevel(outLevel)
                consoleHandler.setFormatter(CustomFormatter(outFormat))
            log.addHandler(consoleHandler)
            log.info('Console logging started')

        if (fileFormat is not None and fileName is not None):
            if (fileHandler is None):
                fileHandler = logging.FileHandler(fileName)
                fileHandler.set_name('File handler')
                fileHandler.setLevel(fileLevel)
                fileHandler.setFormatter(CustomFormatter(fileFormat,
                                                         FMT_DATE))
            log.addHandler(fileHandler)
            start = datetime.now().strftime("%m/%d/%Y %H:%M:%S")
            log.info('File logging started at %s in %s',
                     start, os.path.basename(fileName))

        while pending:
            addMainHandlers(logging.getLogger(pending.pop()))

    return log

###############################################################################

def addLog(name:str)->logging.Logger:
    """
    Create logger that shares main logger handlers.


    Parameters
    ----------
    name : str
        Logger name.


    Returns
    -------
    logger : logging.Logger
        New or existing logger.


    Notes
    -----
    If the main logger is not yet created, the logger is queued in pending
    and receives the handlers when setupMain() runs.
    """

    if (name in logging.Logger.manager.loggerDict):
        return logging.getLogger(name)

    thisLog = logging.getLogger(name)
    thisLog.setLevel(DEBUG)
    if (log is None):
        pending.append(name)
    else:
        addMainHandlers(thisLog)
    return thisLog

###############################################################################

def noneLog(name:str)->logging.Logger:
    """
    Strip a logger of its handlers and raise its level to WARNING.

    If name is the main logger, all of its handlers are closed and the
    returned logger becomes the main logger.
    """

    global log

    thisLog = logging.getLogger(name)
    thisLog.setLevel(WARNING)

    if (thisLog.handlers):
        if (thisLog is log):
            while thisLog.handlers:
                deepRemoveHandler(thisLog.handlers[0])
        else:
            removeHandlers(name)

    if (name == MAIN_LOG):
        log = thisLog

    return thisLog

###############################################################################

def closeHandler(handler:logging.Handler)->None:
    """Close handler and clear the global reference if it is a main one."""

    global consoleHandler, fileHandler

    handler.close()
    if (handler is consoleHandler):
        consoleHandler = None
    elif (handler is fileHandler):
        fileHandler = None

###############################################################################

def _isShared(handler:logging.Handler)->bool:
    for l in logging.Logger.manager.loggerDict.values():
        if (isinstance(l, logging.Logger) and handler in l.handlers):
            return True
    return False

###############################################################################

def removeHandlers(name:str)->None:
    """
    Remove all handlers from logger, closing those no other logger uses.


    Parameters
    ----------
    name : str
        Logger name.
    """

    thisLog = logging.getLogger(name)
    while thisLog.handlers:
        handler = thisLog.handlers[0]
        thisLog.removeHandler(handler)
        if not (_isShared(handler)):
            closeHandler(handler)

###############################################################################

def deepRemoveHandler(handler:logging.Handler)->None:
    """Remove handler from every registered logger, then close it."""

    for thisLog in logging.Logger.manager.loggerDict.values():
        if (isinstance(thisLog, logging.Logger)):
            if (handler in thisLog.handlers):
                thisLog.removeHandler(handler)
    closeHandler(handler)

###############################################################################

def removeLog(name:str)->None:
    """
    Remove logger and close its unshared handlers.


    Parameters
    ----------
    name : str
        Logger name to remove.


    Notes
    -----
    If removing the main logger, the global log is reset to None so the next
    setupMain() call builds a fresh one.
    """

    global log

    thisLog = logging.getLogger(name)
    removeHandlers(name)
    logging.Logger.manager.loggerDict.pop(name, None)
    if (thisLog is log):
        log = None

###############################################################################

def setupNet(name:str = 'net',
             fileName:Optional[str] = 'net.log',
             file:bool = True,
             out:bool = True,
             )->logging.Logger:
    """
    Configure and return the radio network logger.


    Parameters
    ----------
    name : str, default='net'
        Logger name.
    fileName : str, default='net.log'
        Network log file name.
    file : bool, default=True
        Write network records to their own file instead of the main file.
    out : bool, default=True
        Echo network records to the main console handler.


    Returns
    -------
    netLog : logging.Logger
        Network logger with configured handlers.


    Notes
    -----
    Per-packet transport records are DEBUG level and numerous; keeping them in
    their own file keeps the main log readable.
    """

    netLog = logging.getLogger(name)
    netLog.setLevel(DEBUG)
    if (name in pending):
        pending.remove(name)

    if (out and consoleHandler is not None):
        netLog.addHandler(consoleHandler)

    if (file and fileName is not None):
        netFileHandler = logging.FileHandler(fileName)
        netFileHandler.set_name('Network file handler')
        if (fileHandler is not None):
            netFileHandler.setLevel(fileHandler.level)
        else:
            netFileHandler.setLevel(DEBUG)
        netFileHandler.setFormatter(CustomFormatter(FMT_FILE, FMT_DATE))
        netLog.addHandler(netFileHandler)
        start = datetime.now().strftime("%m/%d/%Y %H:%M:%S")
        netLog.info('Network file logging started at %s in %s',
                    start, os.path.basename(fileName))
    elif (fileHandler is not None):
        netLog.addHandler(fileHandler)

    netLog.info('%s logger activated', name)
    return netLog
