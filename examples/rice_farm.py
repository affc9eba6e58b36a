"""Rice farm example game: paddies, water upkeep, milling and a market era."""
from __future__ import annotations

from idlecore.building import (
    BuildingDef,
    BuildingEffect,
    ConsumedResource,
    ConsumptionConfig,
    DeathPolicy,
    ProductionConfig,
    ProductionInput,
    ProductionOutput,
    Synergy,
)
from idlecore.definition import ClickTarget, GameConfig, GameDefinition, TimingConfig
from idlecore.multiplier import MultiplierStack
from idlecore.requirement import Req
from idlecore.resource import ResourceDef
from idlecore.upgrade import (
    GrantResources,
    UnlockBuilding,
    UnlockEra,
    UnlockFeature,
    UnlockResource,
    UpgradeDef,
    UpgradeEffect,
)


def define_game() -> GameDefinition:
    return GameDefinition(
        config=GameConfig(
            name="Rice Farm",
            timing=TimingConfig(base_tick_ms=100, offline_efficiency=0.5),
        ),
        resources=[
            ResourceDef("rice", display_name="Rice", initial_amount=60),
            ResourceDef("water", display_name="Water", max_capacity=500),
            ResourceDef("flour", display_name="Rice Flour"),
            ResourceDef("coins", display_name="Coins", era=2, unlocked=False),
        ],
        stacks=[
            MultiplierStack("paddy_production", "Paddy Yield", "production"),
            MultiplierStack("carrier_speed", "Carrier Speed", "speed"),
        ],
        buildings=[
            BuildingDef(
                id="paddy_field",
                display_name="Paddy Field",
                base_cost={"rice": 50},
                production=ProductionConfig(
                    outputs=[ProductionOutput("rice", 0.5)],
                    amount_stack_id="paddy_production",
                ),
                unlocked=True,
            ),
            BuildingDef(
                id="family_worker",
                display_name="Family Worker",
                description="The first helper works for food; later ones want wages.",
                base_cost={"rice": 25},
                subsequent_cost={"rice": 100},
                production=ProductionConfig(outputs=[ProductionOutput("rice", 1.0)]),
                requirements=[Req.owns("paddy_field")],
            ),
            BuildingDef(
                id="village_well",
                display_name="Village Well",
                base_cost={"rice": 30},
                cost_curve="cost_gentle",
                max_owned=10,
                production=ProductionConfig(outputs=[ProductionOutput("water", 1.0)]),
                unlocked=True,
            ),
            BuildingDef(
                id="water_carrier",
                display_name="Water Carrier",
                base_cost={"rice": 150},
                production=ProductionConfig(
                    outputs=[ProductionOutput("water", 2.0)],
                    speed_stack_id="carrier_speed",
                ),
                requirements=[Req.owns("village_well")],
            ),
            BuildingDef(
                id="buffalo",
                display_name="Water Buffalo",
                description="Ploughs the paddies but drinks constantly.",
                base_cost={"rice": 250},
                cost_curve="cost_aggressive",
                consumption=ConsumptionConfig(
                    resources=[ConsumedResource("water", 0.2, health_loss_per_missing=5.0)],
                    max_health=100,
                    on_death=DeathPolicy.REMOVE,
                ),
                synergies=[Synergy("paddy_field", 0.1)],
                requirements=[Req.owns("paddy_field", 3)],
            ),
            BuildingDef(
                id="rice_mill",
                display_name="Rice Mill",
                category="converter",
                base_cost={"rice": 500},
                production=ProductionConfig(
                    inputs=[ProductionInput("rice", 5.0)],
                    outputs=[ProductionOutput("flour", 1.0)],
                    base_interval_ms=2000,
                ),
                requirements=[Req.owns("paddy_field", 5)],
            ),
            BuildingDef(
                id="fishing_dingy",
                display_name="Fishing Dingy",
                description="Comes back every ten seconds, sometimes with a good catch.",
                base_cost={"rice": 200},
                cost_curve="cost_dingy_5x",
                max_owned=5,
                production=ProductionConfig(
                    outputs=[
                        ProductionOutput("rice", 20.0),
                        ProductionOutput("rice", 30.0, chance=0.25),
                    ],
                    base_interval_ms=10000,
                    batch=True,
                    idle_efficiency=0.5,
                ),
                requirements=[Req.lifetime("rice", 500)],
            ),
            BuildingDef(
                id="irrigation_canal",
                display_name="Irrigation Canal",
                base_cost={"rice": 1000, "water": 200},
                effects=[BuildingEffect("all_production", per_unit=0.05)],
                requirements=[Req.upgrade("irrigation")],
                visible_before_unlock=False,
            ),
            BuildingDef(
                id="market_stall",
                display_name="Market Stall",
                category="converter",
                era=2,
                base_cost={"flour": 40},
                production=ProductionConfig(
                    inputs=[ProductionInput("flour", 2.0)],
                    outputs=[ProductionOutput("coins", 1.0)],
                    base_interval_ms=5000,
                    batch=True,
                ),
            ),
        ],
        upgrades=[
            UpgradeDef(
                id="iron_sickle",
                display_name="Iron Sickle",
                description="Paddies yield twice as much.",
                cost={"rice": 200},
                effects=[UpgradeEffect("paddy_production", 2.0)],
                requirements=[Req.owns("paddy_field", 5)],
            ),
            UpgradeDef(
                id="better_yokes",
                display_name="Better Yokes",
                description="Carriers walk 50% faster.",
                cost={"rice": 800},
                effects=[UpgradeEffect("carrier_speed", 1.5)],
                requirements=[Req.owns("water_carrier")],
            ),
            UpgradeDef(
                id="irrigation",
                display_name="Irrigation",
                description="Unlocks irrigation canals.",
                cost={"rice": 1500},
                special_effects=[UnlockBuilding("irrigation_canal")],
                requirements=[Req.lifetime("rice", 2000)],
                visible_before_unlock=True,
            ),
            UpgradeDef(
                id="market_day",
                display_name="Market Day",
                description="Opens the village market.",
                cost={"flour": 50},
                prerequisites=["iron_sickle"],
                special_effects=[
                    UnlockEra(2),
                    UnlockResource("coins"),
                    UnlockFeature("market"),
                    GrantResources({"coins": 10}),
                ],
            ),
        ],
        click_targets=[ClickTarget("rice", base_value=1.0)],
    )
