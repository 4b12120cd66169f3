from fast_bitrix24 import BitrixAsync
from datetime import timedelta
from typing import List, Dict, Any, Optional, Tuple
from leads_sync.config import settings
from leads_sync.exceptions import ScouterNotFoundError
from leads_sync.schemas.reconciliation_job import JobFilters
import logging

logger = logging.getLogger(__name__)


class BitrixClient:
    """Клиент для работы с Bitrix24 REST API через библиотеку fast_bitrix24"""
    
    def __init__(self):
        """Инициализация клиента Bitrix24"""
        webhook = settings.bitrix24_webhook or settings.bitrix24_access_token
        if not webhook:
            raise ValueError("Необходимо указать BITRIX24_WEBHOOK или BITRIX24_ACCESS_TOKEN в переменных окружения")
        
        self.client = BitrixAsync(webhook)
        logger.info("Bitrix24 клиент инициализирован")
    
    async def get_entity_fields(self, entity_type: str) -> Dict[str, Any]:
        """
        Получить поля сущности из Bitrix24
        
        Args:
            entity_type: Тип сущности (lead, deal и т.д.)
            
        Returns:
            Словарь с полями сущности
        """
        try:
            fields = await self.client.get_all(f'crm.{entity_type}.fields')
            logger.info(f"Получено {len(fields)} полей для сущности {entity_type}")
            return fields
        except Exception as e:
            logger.error(f"Ошибка при получении полей сущности {entity_type}: {e}")
            raise
    
    async def get_status_list(self, entity_id: str) -> List[Dict[str, Any]]:
        """
        Получить список статусов для указанного типа
        
        Args:
            entity_id: ID типа статуса (например, 'STATUS', 'SOURCE')
        """
        try:
            statuses = await self.client.get_all(
                'crm.status.list',
                params={'filter': {'ENTITY_ID': entity_id}}
            )
            logger.info(f"Получено {len(statuses)} статусов для {entity_id}")
            return statuses
        except Exception as e:
            logger.error(f"Ошибка при получении статусов {entity_id}: {e}")
            raise
    
    async def list_lead_ids_page(
        self,
        filter_dict: Dict[str, Any],
        start: int = 0
    ) -> Tuple[List[int], Optional[int]]:
        """
        Получить одну страницу ID лидов
        
        Args:
            filter_dict: Фильтр crm.lead.list
            start: Смещение страницы (значение next из предыдущего ответа)
            
        Returns:
            Кортеж (список ID, смещение следующей страницы или None)
        """
        response = await self.client.call(
            'crm.lead.list',
            {
                'select': ['ID'],
                'order': {'ID': 'DESC'},
                'filter': filter_dict,
                'start': start
            },
            raw=True
        )
        if isinstance(response, dict) and response.get('error'):
            raise RuntimeError(f"Ошибка Bitrix: {response.get('error_description') or response['error']}")
        
        leads = response.get('result', []) if isinstance(response, dict) else response
        ids = [int(lead['ID']) for lead in leads or []]
        next_start = response.get('next') if isinstance(response, dict) else None
        logger.debug(f"Страница лидов start={start}: {len(ids)} ID, next={next_start}")
        return ids, next_start
    
    async def get_entity(
        self,
        entity_type: str,
        entity_id: int,
        select: Optional[List[str]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Получить одну сущность из Bitrix24 по ID
        
        Args:
            entity_type: Тип сущности (lead, deal и т.д.)
            entity_id: ID сущности
            select: Список полей для выборки (если не указан, возвращаются все поля)
            
        Returns:
            Словарь с данными сущности или None если не найдена
        """
        try:
            params = {
                'filter': {'ID': entity_id}
            }
            if select:
                params['select'] = select
            
            entities = await self.client.get_all(f'crm.{entity_type}.list', params=params)
            
            if entities:
                logger.debug(f"Получена сущность {entity_type} с ID {entity_id}")
                return entities[0]
            logger.warning(f"Сущность {entity_type} с ID {entity_id} не найдена")
            return None
        except Exception as e:
            logger.error(f"Ошибка при получении сущности {entity_type} с ID {entity_id}: {e}")
            raise
    
    async def find_spa_item_id(self, entity_type_id: int, title: str) -> Optional[int]:
        """
        Найти элемент смарт-процесса по названию
        
        Args:
            entity_type_id: ID смарт-процесса (например, 1096 - скаутеры)
            title: Часть названия элемента
        """
        try:
            items = await self.client.get_all(
                'crm.item.list',
                params={
                    'entityTypeId': entity_type_id,
                    'select': ['id', 'title'],
                    'filter': {'%title': title}
                }
            )
            if isinstance(items, dict):
                items = items.get('items', [])
            if not items:
                return None
            return int(items[0]['id'])
        except Exception as e:
            logger.error(f"Ошибка при поиске элемента смарт-процесса {entity_type_id} '{title}': {e}")
            raise


class BitrixLeadSource:
    """Источник лидов Bitrix24 для джоба сверки"""
    
    def __init__(self, bitrix_client: BitrixClient):
        self.bitrix_client = bitrix_client
        self._scouter_ids: Dict[str, int] = {}
    
    async def _resolve_scouter_id(self, scouter_name: str) -> int:
        key = scouter_name.strip().lower()
        if key not in self._scouter_ids:
            scouter_id = await self.bitrix_client.find_spa_item_id(
                settings.scouter_entity_type_id, scouter_name.strip()
            )
            if scouter_id is None:
                raise ScouterNotFoundError(scouter_name)
            logger.info(f"Скаутер '{scouter_name}' -> ID {scouter_id} в Bitrix24")
            self._scouter_ids[key] = scouter_id
        return self._scouter_ids[key]
    
    async def build_filter(self, filters: JobFilters) -> Dict[str, Any]:
        """Фильтр crm.lead.list по скаутеру и датам создания"""
        filter_dict: Dict[str, Any] = {}
        if filters.scouter_name:
            filter_dict[settings.scouter_parent_field] = await self._resolve_scouter_id(filters.scouter_name)
        if filters.date_from:
            filter_dict['>=DATE_CREATE'] = f"{filters.date_from.isoformat()}T00:00:00"
        if filters.date_to:
            # Включаем date_to: строго меньше начала следующего дня
            next_day = filters.date_to + timedelta(days=1)
            filter_dict['<DATE_CREATE'] = f"{next_day.isoformat()}T00:00:00"
        return filter_dict
    
    async def list_ids(self, filters: JobFilters, page_token: Optional[int]) -> Tuple[List[int], Optional[int]]:
        filter_dict = await self.build_filter(filters)
        return await self.bitrix_client.list_lead_ids_page(filter_dict, page_token or 0)
    
    async def get_record(self, record_id: int) -> Optional[Dict[str, Any]]:
        return await self.bitrix_client.get_entity(
            'lead', record_id, select=['*', 'UF_*', 'PHONE', 'EMAIL']
        )


# Singleton экземпляр клиента
_bitrix_client: Optional[BitrixClient] = None


def get_bitrix_client() -> BitrixClient:
    """Получить экземпляр Bitrix24 клиента (singleton)"""
    global _bitrix_client
    if _bitrix_client is None:
        _bitrix_client = BitrixClient()
    return _bitrix_client
