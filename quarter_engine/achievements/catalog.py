"""
Achievement catalog — static, versioned definitions.

Thresholds read the round's metric dict; custom requirements read cumulative
counters the orchestrator feeds in (loans taken, tools used, choices made).
Bump CATALOG_VERSION whenever an entry is added, removed, or re-tuned.
"""

from pathlib import Path
from typing import List, Union

from pydantic import RootModel

from quarter_engine.core.loader import load_and_validate
from quarter_engine.models.achievements import (
    Achievement,
    AchievementCategory,
    AchievementRequirement,
    AchievementTier,
    RequirementKind,
)

CATALOG_VERSION = "1.3.0"


def threshold(metric: str, operator: str, value: float) -> AchievementRequirement:
    return AchievementRequirement(kind=RequirementKind.THRESHOLD, metric=metric, operator=operator, value=value)


def sustained(metric: str, operator: str, value: float, rounds: int) -> AchievementRequirement:
    return AchievementRequirement(
        kind=RequirementKind.SUSTAINED, metric=metric, operator=operator, value=value, rounds=rounds,
    )


def custom(counter: str, operator: str = ">=", value: float = 1) -> AchievementRequirement:
    return AchievementRequirement(kind=RequirementKind.CUSTOM, metric=counter, operator=operator, value=value)


_F = AchievementCategory
_T = AchievementTier

ACHIEVEMENTS: List[Achievement] = [
    # --- Finance ---
    Achievement(id="first_profit", name="In the Black", category=_F.FINANCE, tier=_T.BRONZE,
                description="Post a positive net income.",
                flavor="The accountants are cautiously optimistic.",
                requirements=[threshold("net_income", ">", 0)]),
    Achievement(id="hundred_million", name="Hundred Million Quarter", category=_F.FINANCE, tier=_T.SILVER,
                description="Book $100M of revenue in one round.",
                requirements=[threshold("revenue", ">=", 100_000_000)]),
    Achievement(id="billion_club", name="Billion Club", category=_F.FINANCE, tier=_T.GOLD,
                description="Reach $1B in cumulative revenue.",
                flavor="Nine zeros. Count them twice.",
                requirements=[threshold("cumulative_revenue", ">=", 1_000_000_000)]),
    Achievement(id="cash_king", name="Cash King", category=_F.FINANCE, tier=_T.GOLD,
                description="Hold $500M in cash.",
                requirements=[threshold("cash", ">=", 500_000_000)]),
    Achievement(id="market_titan", name="Market Titan", category=_F.FINANCE, tier=_T.PLATINUM,
                description="Reach a $5B market capitalization.",
                requirements=[threshold("market_cap", ">=", 5_000_000_000)]),
    Achievement(id="steady_hand", name="Steady Hand", category=_F.FINANCE, tier=_T.GOLD,
                description="Stay profitable for 8 consecutive rounds.",
                flavor="Boring, in the best possible way.",
                requirements=[sustained("net_income", ">", 0, 8)]),
    Achievement(id="debut_debt", name="Debut Debt", category=_F.FINANCE, tier=_T.BRONZE,
                description="Take out your first bank loan.",
                requirements=[custom("loans_taken")]),
    Achievement(id="bond_issuer", name="Bond, Corporate Bond", category=_F.FINANCE, tier=_T.BRONZE,
                description="Issue corporate bonds.",
                requirements=[custom("bonds_issued")]),
    Achievement(id="ipo_day", name="Ringing the Bell", category=_F.FINANCE, tier=_T.SILVER,
                description="Issue new shares.",
                requirements=[custom("stock_issued")]),
    Achievement(id="dividend_darling", name="Dividend Darling", category=_F.FINANCE, tier=_T.SILVER,
                description="Pay a dividend to shareholders.",
                requirements=[custom("dividends_paid")]),
    Achievement(id="buyback_baron", name="Buyback Baron", category=_F.FINANCE, tier=_T.GOLD,
                description="Buy back your own shares.",
                requirements=[custom("buybacks")]),
    Achievement(id="financial_architect", name="Financial Architect", category=_F.FINANCE, tier=_T.PLATINUM,
                description="Use loans, bonds, and new equity over the course of a game.",
                requirements=[custom("loans_taken"), custom("bonds_issued"), custom("stock_issued")]),
    Achievement(id="board_whisperer", name="The Board Whisperer", category=_F.FINANCE, tier=_T.PLATINUM,
                description="Win five board votes.",
                flavor="They nod before you finish the slide.",
                requirements=[custom("board_approvals", ">=", 5)]),
    Achievement(id="drowning_in_debt", name="Drowning in Debt", category=_F.FINANCE, tier=_T.INFAMY,
                description="Let debt exceed twice your equity.",
                requirements=[threshold("debt_to_equity", ">=", 2.0)]),
    Achievement(id="cash_hemorrhage", name="Cash Hemorrhage", category=_F.FINANCE, tier=_T.INFAMY,
                description="Lose $25M or more in a single round.",
                requirements=[threshold("net_income", "<=", -25_000_000)]),
    Achievement(id="board_revolt", name="The Board Revolt", category=_F.FINANCE, tier=_T.INFAMY,
                description="Have three proposals voted down.",
                requirements=[custom("board_rejections", ">=", 3)]),
    Achievement(id="dividend_of_doom", name="Dividend of Doom", category=_F.FINANCE, tier=_T.INFAMY,
                description="Pay a dividend in a round you lost money.",
                requirements=[custom("dividend_while_loss")]),

    # --- R&D ---
    Achievement(id="first_patent", name="Patent Pending", category=_F.RD, tier=_T.BRONZE,
                description="Earn your first patent.",
                requirements=[threshold("patents", ">=", 1)]),
    Achievement(id="patent_portfolio", name="Patent Portfolio", category=_F.RD, tier=_T.SILVER,
                description="Hold five patents.",
                requirements=[threshold("patents", ">=", 5)]),
    Achievement(id="quality_excellence", name="Quality Excellence", category=_F.RD, tier=_T.SILVER,
                description="Average launched-product quality of 85 or more.",
                requirements=[threshold("avg_quality", ">=", 85)]),
    Achievement(id="perfectionist", name="Perfectionist", category=_F.RD, tier=_T.GOLD,
                description="Ship a product with quality 98 or higher.",
                requirements=[threshold("max_quality", ">=", 98)]),
    Achievement(id="launch_party", name="Launch Party", category=_F.RD, tier=_T.BRONZE,
                description="Launch a newly developed product.",
                requirements=[custom("products_launched")]),
    Achievement(id="serial_innovator", name="Serial Innovator", category=_F.RD, tier=_T.GOLD,
                description="Launch five new products.",
                requirements=[custom("products_launched", ">=", 5)]),
    Achievement(id="rd_powerhouse", name="R&D Powerhouse", category=_F.RD, tier=_T.GOLD,
                description="Accumulate 10,000 research points.",
                requirements=[threshold("rd_points", ">=", 10_000)]),

    # --- Logistics ---
    Achievement(id="first_order", name="Bill of Lading", category=_F.LOGISTICS, tier=_T.BRONZE,
                description="Place your first material order.",
                requirements=[custom("material_orders")]),
    Achievement(id="route_scholar", name="Route Scholar", category=_F.LOGISTICS, tier=_T.BRONZE,
                description="Use the route comparison tool.",
                flavor="Knowing the lanes is half the freight bill.",
                requirements=[custom("tool:route_comparison")]),
    Achievement(id="calculator_curious", name="Calculator Curious", category=_F.LOGISTICS, tier=_T.BRONZE,
                description="Use the logistics cost calculator.",
                requirements=[custom("tool:logistics_calculator")]),
    Achievement(id="speed_demon", name="Speed Demon", category=_F.LOGISTICS, tier=_T.SILVER,
                description="Ship five orders by air.",
                requirements=[custom("air_shipments", ">=", 5)]),
    Achievement(id="reliable_shipper", name="Reliable Shipper", category=_F.LOGISTICS, tier=_T.GOLD,
                description="Receive ten shipments.",
                requirements=[custom("shipments_delivered", ">=", 10)]),
    Achievement(id="stuck_at_customs", name="Stuck at Customs", category=_F.LOGISTICS, tier=_T.INFAMY,
                description="Have three shipments delayed.",
                requirements=[custom("shipments_delayed", ">=", 3)]),

    # --- Results ---
    Achievement(id="podium", name="On the Podium", category=_F.RESULTS, tier=_T.BRONZE,
                description="Finish a round in the top three.",
                requirements=[threshold("overall_rank", "<=", 3)]),
    Achievement(id="number_one", name="Number One", category=_F.RESULTS, tier=_T.GOLD,
                description="Finish a round in first place.",
                requirements=[threshold("overall_rank", "==", 1)]),
    Achievement(id="eps_champion", name="EPS Champion", category=_F.RESULTS, tier=_T.SILVER,
                description="Top the earnings-per-share table.",
                requirements=[threshold("eps_rank", "==", 1)]),
    Achievement(id="share_leader", name="Share Leader", category=_F.RESULTS, tier=_T.SILVER,
                description="Top the market share table.",
                requirements=[threshold("share_rank", "==", 1)]),
    Achievement(id="dynasty", name="Dynasty", category=_F.RESULTS, tier=_T.PLATINUM,
                description="Hold first place for three consecutive rounds.",
                requirements=[sustained("overall_rank", "==", 1, 3)]),
    Achievement(id="perennial_underdog", name="Perennial Underdog", category=_F.RESULTS, tier=_T.INFAMY,
                description="Finish last three rounds in a row.",
                requirements=[sustained("is_last", "==", 1, 3)]),

    # --- Factory ---
    Achievement(id="second_site", name="Second Site", category=_F.FACTORY, tier=_T.SILVER,
                description="Operate two factories.",
                requirements=[threshold("factories", ">=", 2)]),
    Achievement(id="global_footprint", name="Global Footprint", category=_F.FACTORY, tier=_T.GOLD,
                description="Operate factories in three regions.",
                requirements=[threshold("factory_regions", ">=", 3)]),
    Achievement(id="lean_machine", name="Lean Machine", category=_F.FACTORY, tier=_T.SILVER,
                description="Average factory efficiency of 90% or better.",
                requirements=[threshold("efficiency_avg", ">=", 0.9)]),
    Achievement(id="zero_defects", name="Zero Defects", category=_F.FACTORY, tier=_T.GOLD,
                description="Keep every factory's defect rate at 1% or less.",
                requirements=[threshold("defect_rate", "<=", 0.01)]),
    Achievement(id="upgrade_collector", name="Upgrade Collector", category=_F.FACTORY, tier=_T.SILVER,
                description="Install four factory upgrades.",
                requirements=[threshold("upgrades", ">=", 4)]),
    Achievement(id="going_green", name="Going Green", category=_F.FACTORY, tier=_T.BRONZE,
                description="Reach an ESG score of 500.",
                requirements=[threshold("esg_score", ">=", 500)]),
    Achievement(id="sustainability_champion", name="Sustainability Champion", category=_F.FACTORY,
                tier=_T.GOLD, description="Reach an ESG score of 800.",
                requirements=[threshold("esg_score", ">=", 800)]),

    # --- HR ---
    Achievement(id="major_employer", name="Major Employer", category=_F.HR, tier=_T.SILVER,
                description="Employ 500 people.",
                requirements=[threshold("headcount", ">=", 500)]),
    Achievement(id="happy_workforce", name="Happy Workforce", category=_F.HR, tier=_T.SILVER,
                description="Reach morale of 85.",
                requirements=[threshold("morale", ">=", 85)]),
    Achievement(id="great_place_to_work", name="Great Place to Work", category=_F.HR, tier=_T.GOLD,
                description="Keep morale at 75 or above for four rounds.",
                requirements=[sustained("morale", ">=", 75, 4)]),
    Achievement(id="training_day", name="Training Day", category=_F.HR, tier=_T.BRONZE,
                description="Run a training program.",
                requirements=[custom("trainings")]),
    Achievement(id="burnout_factory", name="Burnout Factory", category=_F.HR, tier=_T.INFAMY,
                description="Let burnout reach 60.",
                flavor="The coffee machine filed a complaint.",
                requirements=[threshold("burnout", ">=", 60)]),
    Achievement(id="revolving_door", name="Revolving Door", category=_F.HR, tier=_T.INFAMY,
                description="Fire 50 people over the course of a game.",
                requirements=[custom("fires", ">=", 50)]),

    # --- Marketing ---
    Achievement(id="brand_builder", name="Brand Builder", category=_F.MARKETING, tier=_T.SILVER,
                description="Average brand strength of 0.6.",
                requirements=[threshold("brand_avg", ">=", 0.6)]),
    Achievement(id="household_name", name="Household Name", category=_F.MARKETING, tier=_T.GOLD,
                description="Average brand strength of 0.8.",
                requirements=[threshold("brand_avg", ">=", 0.8)]),
    Achievement(id="segment_leader", name="Segment Leader", category=_F.MARKETING, tier=_T.SILVER,
                description="Lead market share in any segment.",
                requirements=[threshold("segments_led", ">=", 1)]),
    Achievement(id="dominator", name="Market Dominator", category=_F.MARKETING, tier=_T.GOLD,
                description="Take half of a segment's sales.",
                requirements=[threshold("max_segment_share", ">=", 0.5)]),
    Achievement(id="full_lineup", name="Full Lineup", category=_F.MARKETING, tier=_T.BRONZE,
                description="Sell products in all five segments.",
                requirements=[threshold("segments_covered", ">=", 5)]),
    Achievement(id="sponsor", name="Proud Sponsor", category=_F.MARKETING, tier=_T.BRONZE,
                description="Sign a sponsorship deal.",
                requirements=[custom("sponsorships")]),
    Achievement(id="fire_sale", name="Fire Sale", category=_F.MARKETING, tier=_T.INFAMY,
                description="Discount a segment by 40% or more.",
                requirements=[threshold("promotion_max", ">=", 0.4)]),

    # --- News ---
    Achievement(id="opportunist", name="Opportunist", category=_F.NEWS, tier=_T.BRONZE,
                description="Respond to an opportunity event.",
                requirements=[custom("opportunity_choices")]),
    Achievement(id="crisis_manager", name="Crisis Manager", category=_F.NEWS, tier=_T.SILVER,
                description="Respond to a crisis event.",
                requirements=[custom("crisis_choices")]),
    Achievement(id="headline_maker", name="Headline Maker", category=_F.NEWS, tier=_T.GOLD,
                description="Respond to five events.",
                requirements=[custom("event_choices", ">=", 5)]),

    # --- Mega ---
    Achievement(id="triple_crown", name="Triple Crown", category=_F.MEGA, tier=_T.PLATINUM,
                description="Rank first overall, in EPS, and in market share in the same round.",
                requirements=[
                    threshold("overall_rank", "==", 1),
                    threshold("eps_rank", "==", 1),
                    threshold("share_rank", "==", 1),
                ]),
    Achievement(id="conglomerate", name="Conglomerate", category=_F.MEGA, tier=_T.PLATINUM,
                description="$2B cumulative revenue, three segments led, and ESG of 600.",
                requirements=[
                    threshold("cumulative_revenue", ">=", 2_000_000_000),
                    threshold("segments_led", ">=", 3),
                    threshold("esg_score", ">=", 600),
                ]),

    # --- Secret ---
    Achievement(id="comeback_kid", name="Comeback Kid", category=_F.SECRET, tier=_T.SECRET, hidden=True,
                description="Climb three or more places in a single round.",
                requirements=[threshold("rank_improvement", ">=", 3)]),
    Achievement(id="lucky_gambler", name="Lucky Gambler", category=_F.SECRET, tier=_T.SECRET, hidden=True,
                description="Win a coin-flip choice that had even odds or worse.",
                requirements=[custom("long_shot_wins")]),
    Achievement(id="skeleton_crew", name="Skeleton Crew", category=_F.SECRET, tier=_T.SECRET, hidden=True,
                description="Turn a profit with 40 or fewer employees.",
                requirements=[threshold("headcount", "<=", 40), threshold("net_income", ">", 0)]),
    Achievement(id="robbing_peter", name="Robbing Peter to Pay Paul", category=_F.SECRET, tier=_T.SECRET,
                hidden=True, description="Borrow and pay a dividend in the same round.",
                requirements=[custom("borrowed_for_dividend")]),
]


class AchievementCatalog(RootModel[List[Achievement]]):
    pass


def load_catalog(path: Union[str, Path]) -> List[Achievement]:
    """Load a replacement catalog from a JSON list of achievement definitions."""
    return list(load_and_validate(path, AchievementCatalog).root)
