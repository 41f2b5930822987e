"""
Инфраструктурный слой: конкурентность, устойчивость, хранилище памяти.
"""
