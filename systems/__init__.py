"""
Systems - оркестрация диалогов

sessions      - визарды (Session Directory + Workflow Controllers)
intents       - классификация и диспетчеризация свободного текста
confirmation  - одноразовые токены подтверждения
rendering     - потоковый вывод и индикатор активности
nutrition     - нормы и отчёты
conversation  - движок: mailbox + executor + engine
"""
