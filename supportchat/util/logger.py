import logging, json, sys, os

class JsonFormatter(logging.Formatter):
    def format(self, record):
        d = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "lvl": record.levelname,
            "name": record.name,
        }
        # log.info({"event": ...}) style: merge the dict instead of stringifying it
        if isinstance(record.msg, dict):
            d.update(record.msg)
        else:
            d["msg"] = record.getMessage()
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False, default=str)

def get_logger(name="supportchat"):
    log = logging.getLogger(name)
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        log.addHandler(h)
        level = getattr(logging, os.getenv("LOG_LEVEL","INFO").upper(), logging.INFO)
        log.setLevel(level)
        log.propagate = False
    return log
