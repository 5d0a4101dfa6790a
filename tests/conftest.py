import os
import tempfile

# logger_config attaches a file handler at import time; keep it out of the repo
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "contest-arena-test-logs"))

from evaluation import TestEvaluator  # noqa: E402
from questions import TestCase  # noqa: E402
from results import TestOutcome, TestResult  # noqa: E402

# Domain classes named Test* are not test classes
for domain_class in (TestCase, TestEvaluator, TestOutcome, TestResult):
    domain_class.__test__ = False
