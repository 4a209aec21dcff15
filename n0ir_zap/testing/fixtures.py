import pytest
from loguru import logger

from n0ir_zap.testing.simulated_chain import Scenario, build_scenario, sim_address

CALLER = sim_address("caller")
STRANGER = sim_address("stranger")
CALLER_FUNDS = 1_000_000 * 10**6


@pytest.fixture
def sim_scenario() -> Scenario:
    scenario = build_scenario(stable_reward_rate=10**15)
    chain = scenario.chain
    for account in (CALLER, STRANGER):
        chain.mint(scenario.usdc, account, CALLER_FUNDS)
        chain.approve(account, chain.account, scenario.usdc, CALLER_FUNDS)
        chain.approve_positions(account, chain.account)
    logger.debug(f"[sim] scenario ready, zap account {chain.account}")
    return scenario


@pytest.fixture
def sim_chain(sim_scenario):
    return sim_scenario.chain


@pytest.fixture
def zap_manager(sim_scenario):
    return sim_scenario.chain.manager(
        sim_scenario.usdc, connectors=[sim_scenario.weth]
    )
