"""
Deal Desk — Pipeline Service
==============================

The operations both adapters (console menu, tool server) call. Owns the
normalize-then-store round trip on every write and hands report functions
a snapshot of the current deals.

Not-found is an absence value here (None / False); adapters decide how to
surface it.

Usage:
    from scripts.pipeline.service import PipelineService, build_service
    service = build_service()
    brief = service.daily_brief()
"""
from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from models.deal_models import Deal, DealFilter, PromoterIdentity, PromoterTier
from models.report_models import (
    DailyBrief,
    ForecastSnapshot,
    HygieneReport,
    NormalizationChange,
    PatchResult,
    PipelineStats,
    PromoterAction,
    PromoterDashboard,
    PromoterDealStatus,
)
from scripts.lib.logger import setup_logger
from scripts.pipeline.daily_brief import daily_brief
from scripts.pipeline.forecast import forecast_snapshot
from scripts.pipeline.hygiene import hygiene_report
from scripts.pipeline.lookups import LookupTables
from scripts.pipeline.normalizer import DealNormalizer
from scripts.pipeline.patching import apply_patch
from scripts.pipeline.promoter_dashboard import (
    promoter_actions,
    promoter_dashboard,
    promoter_deals,
)
from scripts.pipeline.settings import (
    PipelineSettings,
    load_config,
    resolve_data_path,
)
from scripts.pipeline.stats import pipeline_stats
from scripts.pipeline.store import CsvDealStore, InMemoryDealStore
from scripts.pipeline.synthetic import SyntheticDealGenerator

logger = setup_logger(__name__)


class PipelineService:
    """Deal CRUD, patching, reports and persistence over one store."""

    def __init__(
        self,
        store: InMemoryDealStore,
        lookups: LookupTables = None,
        settings: PipelineSettings = None,
        normalizer: DealNormalizer = None,
        clock: Callable[[], date] = None,
    ):
        self.store = store
        self.lookups = lookups or LookupTables.default()
        self.settings = settings or PipelineSettings()
        self.normalizer = normalizer or DealNormalizer(self.lookups)
        self.clock = clock or date.today

    def _ref(self, reference_date: Optional[date]) -> date:
        return reference_date or self.clock()

    # --- Deals ---

    def list_deals(self, deal_filter: DealFilter = None,
                   reference_date: date = None) -> List[Deal]:
        return self.store.query(deal_filter, self._ref(reference_date))

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        return self.store.get(deal_id)

    def upsert_deal(self, deal: Deal | Mapping[str, Any]) -> Tuple[Deal, List[NormalizationChange]]:
        """Normalize and store a deal, creating it when its id is new or empty."""
        if deal is None:
            raise TypeError("deal must not be None")
        if not isinstance(deal, Deal):
            deal = Deal.model_validate(deal)
        normalized, changes = self.normalizer.normalize(deal, self.clock())
        stored = self.store.upsert(normalized)
        logger.info("Upserted %s (%d normalization changes)", stored.deal_id, len(changes))
        return stored, changes

    def patch_deal(self, deal_id: str, updates: Mapping[str, Any]) -> Optional[PatchResult]:
        """Apply field updates; None when the deal does not exist."""
        current = self.store.get(deal_id)
        if current is None:
            logger.info("Patch target not found: %s", deal_id)
            return None
        result = apply_patch(current, updates or {}, self.normalizer, self.clock())
        if result.success:
            result.deal = self.store.upsert(result.deal)
        return result

    def delete_deal(self, deal_id: str) -> bool:
        deleted = self.store.delete(deal_id)
        if deleted:
            logger.info("Deleted %s", deal_id)
        return deleted

    # --- Reports ---

    def daily_brief(self, reference_date: date = None) -> DailyBrief:
        return daily_brief(self.store.get_all(), self._ref(reference_date), self.settings)

    def hygiene_report(self, reference_date: date = None) -> HygieneReport:
        return hygiene_report(
            self.store.get_all(), self._ref(reference_date), self.settings, self.lookups,
        )

    def forecast_snapshot(self, reference_date: date = None) -> ForecastSnapshot:
        return forecast_snapshot(self.store.get_all(), self._ref(reference_date))

    def stats(self) -> PipelineStats:
        return pipeline_stats(self.store.get_all())

    def promoter_dashboard(self, identity: PromoterIdentity, tier: PromoterTier,
                           reference_date: date = None) -> PromoterDashboard:
        return promoter_dashboard(
            self.store.get_all(), identity, tier, self._ref(reference_date), self.settings,
        )

    def promoter_deals(self, identity: PromoterIdentity, tier: PromoterTier,
                       reference_date: date = None) -> List[PromoterDealStatus]:
        return promoter_deals(
            self.store.get_all(), identity, tier, self._ref(reference_date), self.settings,
        )

    def promoter_actions(self, identity: PromoterIdentity, tier: PromoterTier,
                         reference_date: date = None) -> List[PromoterAction]:
        return promoter_actions(
            self.store.get_all(), identity, tier, self._ref(reference_date), self.settings,
        )

    # --- Data management ---

    def generate_synthetic(self, count: int = 100, seed: int = None,
                           reference_date: date = None) -> int:
        """Replace the store contents with generated demo deals."""
        generator = SyntheticDealGenerator(self.lookups, seed=seed, settings=self.settings)
        deals = generator.generate(count, self._ref(reference_date))
        return self.store.load(deals)

    def save(self) -> int:
        if not self.store.persistent:
            logger.info("Store is in-memory, nothing to save")
            return self.store.count()
        return self.store.save()

    def reload(self) -> int:
        """Re-read the sheet and normalize what was loaded."""
        if not self.store.persistent:
            return self.store.count()
        today = self.clock()
        deals = [self.normalizer.normalize(d, today)[0] for d in self.store.read_sheet()]
        return self.store.load(deals)

    def restore_backup(self) -> Optional[str]:
        """Roll the sheet back to its newest backup. Returns the backup name."""
        if not self.store.persistent:
            return None
        restored = self.store.restore_latest_backup()
        if restored is None:
            return None
        self.reload()
        return restored.name

    def summary(self) -> Dict[str, Any]:
        return {"deals": self.store.count(), "persistent": self.store.persistent}


def build_service(
    data_path: str = None,
    config_path: str = None,
    in_memory: bool = False,
) -> PipelineService:
    """Wire settings, lookups and a store from config and environment."""
    settings, lookups = load_config(config_path)
    if in_memory:
        store = InMemoryDealStore()
    else:
        store = CsvDealStore(
            resolve_data_path(data_path), backup_count=settings.backup_count, autoload=False,
        )
    service = PipelineService(store, lookups, settings)
    loaded = service.reload()
    logger.info("Pipeline service ready with %d deals", loaded)
    return service
