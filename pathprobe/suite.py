# pathprobe/suite.py
import logging
import threading
from typing import Callable, Iterable, Optional

from tqdm import tqdm

from pathprobe import scenarios
from pathprobe.brain.engine import ScenarioEngine
from pathprobe.errors import ScenarioAborted

log = logging.getLogger(__name__)


def run_suite(engine: ScenarioEngine, names: Iterable[str] = scenarios.SUITE,
              cancel: Optional[threading.Event] = None, progress: bool = True,
              prepare: Optional[Callable] = None,
              on_result: Optional[Callable] = None) -> list:
    """
    Run scenarios one after another. Returns [(name, ScenarioResult)]; an
    aborted scenario contributes its partial result and the suite goes on.
    Cancellation stops the suite after the current scenario's partial result.
    `prepare` maps each catalog scenario to the one actually run;
    `on_result(name, result)` is called as soon as each scenario ends.
    """
    cancel = cancel or threading.Event()
    names = list(names)
    out = []
    for name in tqdm(names, desc="suite", disable=not progress):
        if cancel.is_set():
            break
        sc = scenarios.get(name)
        if prepare is not None:
            sc = prepare(sc)
        try:
            sr = engine.run(sc, cancel=cancel)
        except ScenarioAborted as e:
            log.error("%s", e)
            sr = e.partial
        out.append((name, sr))
        if on_result is not None:
            on_result(name, sr)
    return out
