from dataclasses import dataclass


@dataclass(frozen=True)
class Scenario:
    id: int
    name: str
    stage_count: int
    enforced: bool

    @property
    def is_sequential(self) -> bool:
        return self.stage_count > 1


SCENARIOS: dict[int, Scenario] = {
    1: Scenario(id=1, name="One-shot, guided", stage_count=1, enforced=False),
    2: Scenario(id=2, name="One-shot, enforced", stage_count=1, enforced=True),
    3: Scenario(id=3, name="Sequential, guided", stage_count=3, enforced=False),
    4: Scenario(id=4, name="Sequential, enforced", stage_count=3, enforced=True),
}

SCENARIO_IDS: tuple[int, ...] = tuple(SCENARIOS)


class UnknownScenarioError(KeyError):
    pass


def get_scenario(scenario_id: int) -> Scenario:
    try:
        return SCENARIOS[scenario_id]
    except KeyError:
        raise UnknownScenarioError(
            f"Unknown scenario {scenario_id}. Available: "
            f"{', '.join(str(s) for s in SCENARIO_IDS)}"
        ) from None
