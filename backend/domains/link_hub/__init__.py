"""
Link Hub - 实体关联图谱

在异构的实验记录（笔记、高亮、数据库条目、项目、实验、方案、配方、表格等）
之间建立有向关联，提供反向链接、出链、搜索、分页和图谱提取。
"""
