# Keys renamed on the way to the table (ui -> db)
to_db = {
    'id': 'id_'
}

# Keys renamed or dropped on the way to the ui (db -> ui), None drops the key
from_db = {
    'partkey': None,
    'sortkey': None,
    'record_type': None,
    'id_': 'id'
}
