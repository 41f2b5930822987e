"""
Dependency Resolver для порядка регистрации плагинов.

Топологическая сортировка по зависимостям; среди плагинов, готовых
к регистрации, первым идёт плагин с большим priority, затем раньше
поданный.
"""

import heapq
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from ..entities.plugin import Plugin

logger = logging.getLogger("agent-runtime.dependency_resolver")


class PluginDependencyResolver:
    """
    Resolver зависимостей между плагинами.
    
    Основные функции:
    - Порядок регистрации (Kahn + куча по (-priority, порядок подачи))
    - Обнаружение неразрешимых зависимостей: отсутствующих, зависящих
      от неразрешимых и циклических
    
    Неразрешимость локальна: исключаются только затронутые плагины.
    """
    
    def resolve(
        self,
        plugins: Sequence[Plugin],
        registered: Iterable[str] = ()
    ) -> Tuple[List[Plugin], Dict[str, Set[str]]]:
        """
        Упорядочить плагины для регистрации.
        
        Args:
            plugins: Поданные плагины в порядке подачи (имена уникальны)
            registered: Имена уже зарегистрированных плагинов
            
        Returns:
            (порядок регистрации, {имя: неразрешённые зависимости})
            
        Example:
            >>> order, unresolved = PluginDependencyResolver().resolve(plugins)
            >>> [p.name for p in order]
            ['sql', 'openai', 'bootstrap']
        """
        registered = set(registered)
        pending = {p.name: p for p in plugins}
        submitted = {p.name: index for index, p in enumerate(plugins)}
        
        unresolved = self._find_missing(pending, registered)
        
        candidates = {n: p for n, p in pending.items() if n not in unresolved}
        waiting: Dict[str, Set[str]] = {
            name: {d for d in plugin.dependencies if d in candidates}
            for name, plugin in candidates.items()
        }
        dependents: Dict[str, List[str]] = defaultdict(list)
        for name, deps in waiting.items():
            for dep in deps:
                dependents[dep].append(name)
        
        heap = [
            (-candidates[name].priority, submitted[name], name)
            for name, deps in waiting.items()
            if not deps
        ]
        heapq.heapify(heap)
        
        order: List[Plugin] = []
        while heap:
            _, _, name = heapq.heappop(heap)
            order.append(candidates[name])
            for dependent in dependents[name]:
                waiting[dependent].discard(name)
                if not waiting[dependent]:
                    heapq.heappush(
                        heap,
                        (-candidates[dependent].priority, submitted[dependent], dependent)
                    )
        
        # Всё, что осталось, стоит в цикле или за ним
        ordered = {p.name for p in order}
        for name in candidates:
            if name not in ordered:
                unresolved[name] = set(waiting[name])
                logger.warning(f"Plugin {name} is part of or behind a dependency cycle")
        
        logger.debug(f"Registration order: {[p.name for p in order]}")
        return order, unresolved
    
    def _find_missing(
        self,
        pending: Dict[str, Plugin],
        registered: Set[str]
    ) -> Dict[str, Set[str]]:
        """Неподанные зависимости и зависимости от неразрешимых (до неподвижной точки)."""
        unresolved: Dict[str, Set[str]] = {}
        changed = True
        while changed:
            changed = False
            for name, plugin in pending.items():
                if name in unresolved:
                    continue
                missing = {
                    dep for dep in plugin.dependencies
                    if dep not in registered and (dep not in pending or dep in unresolved)
                }
                if missing:
                    unresolved[name] = missing
                    changed = True
        return unresolved
