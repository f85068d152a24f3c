"""
evacuate
~~~~~~~~

实时位置共享房间后端。
"""
