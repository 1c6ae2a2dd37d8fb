from datamodel import *
from logger import logger
import storage.kv as kv

MEDICATIONS_KEY = "medications"
ADHERENCE_KEY = "adherenceData"


class MedicationPersistence:
    """把服药列表与依从性计数保存到键值存储"""

    async def save(self, medications: list[Medication], counters: AdherenceCounters) -> None:
        await kv.set_items({
            MEDICATIONS_KEY: [med.to_dict() for med in medications],
            ADHERENCE_KEY: counters.to_dict(),
        })

    async def load(self) -> tuple[list[Medication], AdherenceCounters]:
        raw_meds = await kv.get_item(MEDICATIONS_KEY, [])
        raw_counters = await kv.get_item(ADHERENCE_KEY)

        medications: list[Medication] = []
        for item in raw_meds or []:
            try:
                medications.append(Medication.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"跳过无法解析的服药记录: {item!r}, error={e}")

        counters = AdherenceCounters.from_dict(raw_counters) if raw_counters else AdherenceCounters()
        logger.debug(f"已加载服药记录 {len(medications)} 条")
        return medications, counters


__all__ = ["MedicationPersistence", "MEDICATIONS_KEY", "ADHERENCE_KEY"]
